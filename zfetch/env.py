"""Environment-based base URL selection."""

import os


LOCAL_HOST_MARKERS = ("localhost",)
LOCAL_HOST_PREFIXES = ("127.",)
ANY_ADDRESS = "0.0.0.0"  # noqa: S104
STAGING_MARKER = "staging"


class EnvChain:
    """Fluent builder mapping deployment environments to base URLs.

    Examples:
        >>> chain = EnvChain().dev("http://localhost:8000").prod("https://api.example.com")
        >>> chain.resolve("localhost")
        'http://localhost:8000'
        >>> chain.resolve("www.example.com")
        'https://api.example.com'
    """

    def __init__(self) -> None:
        """Initialize an empty chain."""
        self._dev: str | None = None
        self._prod: str | None = None
        self._staging: str | None = None
        self._other: dict[str, str] = {}

    def dev(self, url: object) -> "EnvChain":
        """Set the development base URL."""
        self._dev = str(url)
        return self

    def prod(self, url: object) -> "EnvChain":
        """Set the production base URL."""
        self._prod = str(url)
        return self

    def staging(self, url: object) -> "EnvChain":
        """Set the staging base URL."""
        self._staging = str(url)
        return self

    def other_env(self, name: str, url: object) -> "EnvChain":
        """Register a named environment.

        A hostname containing ``name`` resolves to ``url``.
        """
        if name:
            self._other[name.lower()] = str(url)
        return self

    @property
    def environments(self) -> dict[str, str | None]:
        """Get every configured environment."""
        return {
            "dev": self._dev,
            "prod": self._prod,
            "staging": self._staging,
            **self._other,
        }

    @staticmethod
    def _first(*candidates: str | None) -> str:
        return next((candidate for candidate in candidates if candidate), "")

    def resolve(self, hostname: str | None = None) -> str:
        """Pick the base URL for a hostname.

        Rules, in order:
        - localhost, 127.x.x.x and 0.0.0.0 use dev, then prod, then staging
        - hostnames containing "staging" use staging, then prod, then dev
        - hostnames containing a registered other-env name use that URL
        - everything else uses prod, then dev, then staging

        Args:
            hostname: Host to resolve; defaults to the HOSTNAME environment
                variable.

        Returns:
            Selected base URL, or an empty string if none is configured.
        """
        host = (hostname or os.environ.get("HOSTNAME", "")).lower()

        if (
            any(marker in host for marker in LOCAL_HOST_MARKERS)
            or host.startswith(LOCAL_HOST_PREFIXES)
            or host == ANY_ADDRESS
        ):
            return self._first(self._dev, self._prod, self._staging)

        if STAGING_MARKER in host:
            return self._first(self._staging, self._prod, self._dev)

        for name, url in self._other.items():
            if host and name in host:
                return url

        return self._first(self._prod, self._dev, self._staging)

    def __str__(self) -> str:
        return self.resolve()


def env() -> EnvChain:
    """Start a new environment chain."""
    return EnvChain()
