"""Unit tests for the ordered-fallback model router."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sparq_ai.core.exceptions import ConfigurationError, ExhaustionError, ProviderError
from sparq_ai.services.llm import ask_model, get_model_router, set_model_router
from sparq_ai.services.llm.models import DEFAULT_MODEL_MAP
from sparq_ai.services.llm.router import ModelRouter, build_messages
from sparq_ai.services.llm.types import AskOptions, MessageRole, ModelMapping, TaskKind

CREATIVE = DEFAULT_MODEL_MAP[TaskKind.CREATIVE_LONGFORM]


class TestBuildMessages:
    """Tests for message construction."""

    def test_system_precedes_user(self) -> None:
        """System message comes first when provided."""
        messages = build_messages("hello", system="be brief")

        assert [m.role for m in messages] == [MessageRole.SYSTEM, MessageRole.USER]
        assert messages[0].content == "be brief"
        assert messages[1].content == "hello"

    def test_user_only_without_system(self) -> None:
        """Only the user message is sent when no system prompt is given."""
        messages = build_messages("hello")

        assert len(messages) == 1
        assert messages[0].role == MessageRole.USER

    def test_empty_system_is_omitted(self) -> None:
        """An empty system prompt is treated as absent."""
        assert len(build_messages("hello", system="")) == 1


class TestModelRouterFallback:
    """Tests for candidate ordering and fallback."""

    @pytest.mark.asyncio
    async def test_primary_success_makes_one_call(self, scripted_transport) -> None:
        """A successful primary returns its text after exactly one call."""
        scripted_transport.outcomes[CREATIVE.primary] = "primary answer"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        result = await router.complete("write a quest", AskOptions(task=TaskKind.CREATIVE_LONGFORM))

        assert result.content == "primary answer"
        assert result.model == CREATIVE.primary
        assert result.attempts == 1
        assert result.failures == []
        assert result.fallback_occurred is False
        assert scripted_transport.models_called == [CREATIVE.primary]

    @pytest.mark.asyncio
    async def test_first_fallback_used_after_primary_fails(self, scripted_transport) -> None:
        """Primary failure moves to the first fallback, in order."""
        first_fallback = CREATIVE.fallback[0]
        scripted_transport.outcomes[CREATIVE.primary] = ProviderError("boom", model=CREATIVE.primary)
        scripted_transport.outcomes[first_fallback] = "fallback answer"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        result = await router.complete("write a quest", {"task": "creative_longform"})

        assert result.content == "fallback answer"
        assert result.model == first_fallback
        assert result.attempts == 2
        assert result.fallback_occurred is True
        assert [f.model for f in result.failures] == [CREATIVE.primary]
        assert scripted_transport.models_called == [CREATIVE.primary, first_fallback]

    @pytest.mark.asyncio
    async def test_all_candidates_fail_raises_exhaustion(self, scripted_transport) -> None:
        """Exhaustion carries one failure per candidate, in attempt order."""
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with pytest.raises(ExhaustionError) as exc_info:
            await router.ask("write a quest", AskOptions(task=TaskKind.CREATIVE_LONGFORM))

        error = exc_info.value
        assert error.task == "creative_longform"
        assert [f.model for f in error.failures] == list(CREATIVE.candidates)
        assert scripted_transport.models_called == list(CREATIVE.candidates)
        assert error.status_code == 503
        assert error.details["failures"][0]["model"] == CREATIVE.primary

    @pytest.mark.asyncio
    async def test_each_model_tried_once(self, scripted_transport) -> None:
        """No candidate is retried within a single ask."""
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with pytest.raises(ExhaustionError):
            await router.ask("classify", AskOptions(task=TaskKind.CLASSIFICATION))

        called = scripted_transport.models_called
        assert len(called) == len(set(called))

    @pytest.mark.asyncio
    async def test_unexpected_exception_triggers_fallback(self, scripted_transport) -> None:
        """Non-provider exceptions from a transport are recorded and skipped."""
        mapping = DEFAULT_MODEL_MAP[TaskKind.STRUCTURED_GENERATION]
        scripted_transport.outcomes[mapping.primary] = RuntimeError("socket closed")
        scripted_transport.outcomes[mapping.fallback[0]] = "ok"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        result = await router.complete("q", AskOptions(task=TaskKind.STRUCTURED_GENERATION))

        assert result.content == "ok"
        assert result.failures[0].error_type == "RuntimeError"
        assert result.failures[0].message == "socket closed"

    @pytest.mark.asyncio
    async def test_transport_bug_logged_with_traceback(
        self, scripted_transport, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A non-provider exception keeps its traceback in the log; provider errors do not."""
        mapping = DEFAULT_MODEL_MAP[TaskKind.CREATIVE_LONGFORM]
        scripted_transport.outcomes[mapping.primary] = TypeError("bad payload type")
        scripted_transport.outcomes[mapping.fallback[0]] = ProviderError("down", model=mapping.fallback[0])
        scripted_transport.outcomes[mapping.fallback[1]] = "ok"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with caplog.at_level(logging.WARNING, logger="sparq_ai.services.llm.router"):
            await router.complete("q", AskOptions(task=TaskKind.CREATIVE_LONGFORM))

        errors = [r for r in caplog.records if getattr(r, "event", None) == "LLM_ERROR"]
        assert [r.fields["error_type"] for r in errors] == ["TypeError", "ProviderError"]
        assert errors[0].exc_info is not None
        assert errors[0].exc_info[0] is TypeError
        assert not errors[1].exc_info

    @pytest.mark.asyncio
    async def test_rate_limited_failure_is_recorded(self, scripted_transport) -> None:
        """Provider rate limits are fallback triggers and flagged in the trail."""
        mapping = DEFAULT_MODEL_MAP[TaskKind.REASONING_SAFETY]
        scripted_transport.outcomes[mapping.primary] = ProviderError(
            "slow down", model=mapping.primary, provider_status=429, rate_limited=True
        )
        scripted_transport.outcomes[mapping.fallback[0]] = "safe"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        result = await router.complete("check", AskOptions(task=TaskKind.REASONING_SAFETY))

        assert result.failures[0].rate_limited is True
        assert result.failures[0].provider_status == 429

    @pytest.mark.asyncio
    async def test_configuration_error_from_transport_is_not_absorbed(
        self, scripted_transport
    ) -> None:
        """Configuration problems stop the call instead of falling back."""
        scripted_transport.outcomes[CREATIVE.primary] = ConfigurationError("bad setup")
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with pytest.raises(ConfigurationError):
            await router.ask("q", AskOptions(task=TaskKind.CREATIVE_LONGFORM))

        assert scripted_transport.models_called == [CREATIVE.primary]

    @pytest.mark.asyncio
    async def test_primary_only_mapping_exhausts_after_one_call(self, scripted_transport) -> None:
        """A mapping with no fallbacks has a single candidate."""
        model_map = {task: ModelMapping(primary="solo/model") for task in TaskKind}
        router = ModelRouter(scripted_transport, model_map)

        with pytest.raises(ExhaustionError) as exc_info:
            await router.ask("q", AskOptions(task=TaskKind.CLASSIFICATION))

        assert len(exc_info.value.failures) == 1
        assert scripted_transport.models_called == ["solo/model"]


class TestModelRouterRequests:
    """Tests for what the router sends to the transport."""

    @pytest.mark.asyncio
    async def test_messages_and_parameters_forwarded(self, scripted_transport) -> None:
        """System/user messages, temperature and max_tokens reach the transport."""
        mapping = DEFAULT_MODEL_MAP[TaskKind.CLASSIFICATION]
        scripted_transport.outcomes[mapping.primary] = "positive"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        await router.ask(
            "I love this",
            AskOptions(
                task=TaskKind.CLASSIFICATION,
                system="Label the tone",
                temperature=0.0,
                max_tokens=5,
            ),
        )

        call = scripted_transport.calls[0]
        assert [m.role for m in call["messages"]] == [MessageRole.SYSTEM, MessageRole.USER]
        assert call["messages"][1].content == "I love this"
        assert call["temperature"] == 0.0
        assert call["max_tokens"] == 5

    @pytest.mark.asyncio
    async def test_unset_parameters_left_to_transport(self, scripted_transport) -> None:
        """Unset options are passed as None so the transport applies its defaults."""
        mapping = DEFAULT_MODEL_MAP[TaskKind.CLASSIFICATION]
        scripted_transport.outcomes[mapping.primary] = "x"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        await router.ask("q", AskOptions(task=TaskKind.CLASSIFICATION))

        assert scripted_transport.calls[0]["temperature"] is None
        assert scripted_transport.calls[0]["max_tokens"] is None

    @pytest.mark.asyncio
    async def test_unknown_task_fails_before_any_call(self, scripted_transport) -> None:
        """An unknown task kind is a configuration error with no model attempted."""
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with pytest.raises(ConfigurationError):
            await router.ask("q", {"task": "poetry"})

        assert scripted_transport.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "options",
        [
            {"task": "classification", "max_tokens": -1},
            {"task": "classification", "max_tokens": 0},
            {"task": "classification", "temperature": 2.5},
            {"task": "classification", "temperature": -0.1},
        ],
    )
    async def test_malformed_options_fail_before_any_call(
        self, scripted_transport, options: dict
    ) -> None:
        """Out-of-range options are rejected as configuration errors."""
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with pytest.raises(ConfigurationError):
            await router.ask("q", options)

        assert scripted_transport.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "options",
        [
            AskOptions(task=TaskKind.CLASSIFICATION).model_copy(update={"max_tokens": -1}),
            AskOptions(task=TaskKind.CLASSIFICATION).model_copy(update={"temperature": 9.0}),
            AskOptions.model_construct(task="poetry"),
        ],
    )
    async def test_unvalidated_instances_fail_before_any_call(
        self, scripted_transport, options: AskOptions
    ) -> None:
        """Options instances that bypassed validation are checked again."""
        scripted_transport.outcomes["openai/gpt-4o-mini"] = "label"
        router = ModelRouter(scripted_transport, DEFAULT_MODEL_MAP)

        with pytest.raises(ConfigurationError):
            await router.ask("q", options)

        assert scripted_transport.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_asks_are_independent(self, scripted_transport) -> None:
        """One router serves concurrent calls without sharing failure trails."""
        # Disjoint candidate lists, so one call can never satisfy the other
        model_map = {
            TaskKind.CLASSIFICATION: ModelMapping(primary="test/labeler"),
            TaskKind.CREATIVE_LONGFORM: ModelMapping(primary="test/writer", fallback=("test/editor",)),
        }
        scripted_transport.outcomes["test/labeler"] = "label"
        router = ModelRouter(scripted_transport, model_map)

        ok, exhausted = await asyncio.gather(
            router.complete("a", AskOptions(task=TaskKind.CLASSIFICATION)),
            router.complete("b", AskOptions(task=TaskKind.CREATIVE_LONGFORM)),
            return_exceptions=True,
        )

        assert ok.content == "label"
        assert ok.failures == []
        assert isinstance(exhausted, ExhaustionError)
        assert [f.model for f in exhausted.failures] == ["test/writer", "test/editor"]


class TestDefaultRouter:
    """Tests for the process-wide router helpers."""

    @pytest.mark.asyncio
    async def test_ask_model_uses_installed_router(self, scripted_transport) -> None:
        """ask_model delegates to the router set with set_model_router."""
        mapping = DEFAULT_MODEL_MAP[TaskKind.STRUCTURED_GENERATION]
        scripted_transport.outcomes[mapping.primary] = "today's question"
        set_model_router(ModelRouter(scripted_transport, DEFAULT_MODEL_MAP))

        answer = await ask_model("daily question", {"task": "structured_generation"})

        assert answer == "today's question"

    @patch("sparq_ai.services.llm.OpenRouterTransport")
    def test_get_model_router_builds_once(self, mock_transport: MagicMock) -> None:
        """The default router is created lazily and reused."""
        first = get_model_router()
        second = get_model_router()

        assert first is second
        mock_transport.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_close_closes_transport(self) -> None:
        """Closing the router closes a transport that supports it."""
        transport = MagicMock()
        transport.close = AsyncMock()
        router = ModelRouter(transport, DEFAULT_MODEL_MAP)

        await router.close()

        transport.close.assert_awaited_once()
