"""Unit tests for hook chains."""

import pytest

from zfetch.errors import HookError
from zfetch.hooks import HookChain, InterceptorPipeline, TransformPipeline
from zfetch.models import RequestConfig


class TestHookChain:
    """Tests for folding values through a chain."""

    @pytest.mark.asyncio
    async def test_empty_chain_returns_input(self) -> None:
        """Test an empty chain is the identity."""
        run = await HookChain("test").apply(5)

        assert run.value == 5
        assert run.ok is True

    @pytest.mark.asyncio
    async def test_runs_in_registration_order(self) -> None:
        """Test each hook sees its predecessor's output."""
        chain: HookChain[str] = HookChain("test")
        chain.add(lambda v: v + "a")
        chain.add(lambda v: v + "b")

        run = await chain.apply("")

        assert run.value == "ab"

    @pytest.mark.asyncio
    async def test_falsy_return_keeps_value(self) -> None:
        """Test a hook returning None leaves the value unchanged."""
        chain: HookChain[int] = HookChain("test")
        chain.add(lambda v: None)
        chain.add(lambda v: v * 2)

        run = await chain.apply(3)

        assert run.value == 6

    @pytest.mark.asyncio
    async def test_async_hook(self) -> None:
        """Test coroutine hooks are awaited."""

        async def double(v: int) -> int:
            return v * 2

        chain: HookChain[int] = HookChain("test")
        chain.add(double)

        run = await chain.apply(4)

        assert run.value == 8

    @pytest.mark.asyncio
    async def test_context_passed(self) -> None:
        """Test extra context reaches every hook."""
        seen: list[dict[str, str]] = []
        chain: HookChain[str] = HookChain("test")
        chain.add(lambda body, headers: seen.append(headers))

        await chain.apply("body", {"X-Test": "1"})

        assert seen == [{"X-Test": "1"}]

    @pytest.mark.asyncio
    async def test_failing_hook_skipped(self) -> None:
        """Test a raising hook is skipped and recorded."""

        def boom(v: int) -> int:
            raise RuntimeError("boom")

        chain: HookChain[int] = HookChain("test")
        chain.add(lambda v: v + 1)
        chain.add(boom)
        chain.add(lambda v: v + 10)

        run = await chain.apply(0)

        assert run.value == 11
        assert run.ok is False
        assert len(run.failures) == 1
        failure = run.failures[0]
        assert failure.stage == "test"
        assert isinstance(failure.error, HookError)
        assert "boom" in failure.error.message

    @pytest.mark.asyncio
    async def test_wrong_type_rejected(self) -> None:
        """Test replacements of the wrong type are skipped."""
        chain: HookChain[RequestConfig] = HookChain("request", expects=RequestConfig)
        chain.add(lambda config: "not a config")
        config = RequestConfig(url="https://example.com", method="GET")

        run = await chain.apply(config)

        assert run.value is config
        assert len(run.failures) == 1

    @pytest.mark.asyncio
    async def test_truthiness_error_recorded(self) -> None:
        """Test a replacement whose truth test raises is skipped and recorded."""

        class Ambiguous:
            def __bool__(self) -> bool:
                raise ValueError("truth value is ambiguous")

        chain: HookChain[int] = HookChain("test")
        chain.add(lambda v: Ambiguous())
        chain.add(lambda v: v + 1)

        run = await chain.apply(1)

        assert run.value == 2
        assert len(run.failures) == 1
        assert "ambiguous" in run.failures[0].error.message

    @pytest.mark.asyncio
    async def test_validate_rejection_keeps_prior(self) -> None:
        """Test a replacement failing validation is skipped."""

        def positive(v: int) -> int:
            if v <= 0:
                raise ValueError("must be positive")
            return v

        chain: HookChain[int] = HookChain("test", validate=positive)
        chain.add(lambda v: -5)

        run = await chain.apply(3)

        assert run.value == 3
        assert len(run.failures) == 1

    def test_add_rejects_non_callable(self) -> None:
        """Test registering a non-callable fails fast."""
        with pytest.raises(TypeError):
            HookChain("test").add("nope")  # type: ignore[arg-type]

    def test_named_entry(self) -> None:
        """Test hook labels default to the qualified name."""

        def my_hook(v: int) -> int:
            return v

        chain: HookChain[int] = HookChain("test")
        entry = chain.add(my_hook)

        assert entry.name.endswith("my_hook")
        assert len(chain) == 1

        chain.clear()
        assert len(chain) == 0


class TestPipelines:
    """Tests for the interceptor and transform groupings."""

    @pytest.mark.asyncio
    async def test_request_interceptor_copy_revalidated(self) -> None:
        """Test an out-of-range config copy from an interceptor is rejected."""
        pipeline = InterceptorPipeline()
        pipeline.use(request=lambda c: c.model_copy(update={"max_retries": 500}))
        config = RequestConfig(url="https://example.com", method="GET")

        run = await pipeline.request.apply(config)

        assert run.value is config
        assert len(run.failures) == 1

    @pytest.mark.asyncio
    async def test_request_interceptor_valid_copy_kept(self) -> None:
        """Test an in-range config copy passes through unchanged."""
        pipeline = InterceptorPipeline()
        pipeline.use(request=lambda c: c.model_copy(update={"max_retries": 2}))
        config = RequestConfig(url="https://example.com", method="GET")

        run = await pipeline.request.apply(config)

        assert run.ok is True
        assert run.value.max_retries == 2

    def test_use_registers_both(self) -> None:
        """Test use() fills request and response chains."""
        pipeline = InterceptorPipeline()

        pipeline.use(request=lambda c: c, response=lambda r: r)

        assert len(pipeline.request) == 1
        assert len(pipeline.response) == 1

    def test_transform_stages(self) -> None:
        """Test transform chains carry their stage labels."""
        pipeline = TransformPipeline()

        assert pipeline.request.stage == "transform_request"
        assert pipeline.response.stage == "transform_response"
