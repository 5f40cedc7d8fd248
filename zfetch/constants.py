"""HTTP constants for the request pipeline.

Centralizes all HTTP-related constants to avoid duplication across modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_BAD_GATEWAY = 502
HTTP_STATUS_SERVICE_UNAVAILABLE = 503
HTTP_STATUS_GATEWAY_TIMEOUT = 504

# Status code reported when no HTTP reply was received
NO_RESPONSE_STATUS = 0

# Retry defaults
DEFAULT_MAX_RETRIES = 0
DEFAULT_RETRY_DELAY_MS = 300
MAX_RETRIES = 100
MAX_RETRY_DELAY_MS = 600_000
DEFAULT_RETRY_ON = frozenset(
    {
        HTTP_STATUS_TOO_MANY_REQUESTS,
        HTTP_STATUS_BAD_GATEWAY,
        HTTP_STATUS_SERVICE_UNAVAILABLE,
        HTTP_STATUS_GATEWAY_TIMEOUT,
    }
)

# Methods that never carry a request body
BODYLESS_METHODS = frozenset({"GET", "HEAD"})

# Methods whose wrappers take a body argument
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# Only this method is ever served from cache
CACHEABLE_METHOD = "GET"

CONTENT_TYPE_HEADER = "Content-Type"
AUTHORIZATION_HEADER = "Authorization"
JSON_CONTENT_TYPE = "application/json"
DEFAULT_TOKEN_SCHEME = "Bearer"

CACHE_KEY_SEPARATOR = "::"

DEFAULT_CANCEL_REASON = "cancelled"
