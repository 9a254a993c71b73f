"""Analysis Session -- state transitions, supersede, cancel, history."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from message_clearance.config import PipelineConfig
from message_clearance.llm.cancellation import OperationCancelled
from message_clearance.llm.errors import ErrorKind, PipelineError, RequestCancelled
from message_clearance.models import AnalysisResult, HistoryEntry
from message_clearance.session import (
    AnalysisSession,
    SessionStatus,
    SubmissionRejected,
    to_user_error,
)


def make_result(reason: str, verdict: str = "good_to_send") -> AnalysisResult:
    return AnalysisResult.model_validate(
        {
            "verdict": verdict,
            "verdictReason": reason,
            "risks": [],
            "missing": [],
            "rewrites": {"short": "s", "warm": "w", "confident": "c"},
        }
    )


class GatedOrchestrator:
    """Each run() waits for its own gate, then answers with the request text.

    A tripped cancel token unwinds the wait as RequestCancelled.
    """

    def __init__(self):
        self.requests = []
        self.gates: list[asyncio.Event] = []

    async def run(self, request, api_key):
        gate = asyncio.Event()
        self.requests.append(request)
        self.gates.append(gate)
        try:
            await request.cancel_token.run(gate.wait())
        except OperationCancelled as e:
            raise RequestCancelled(cause=e) from e
        return make_result(request.text)


class ScriptedOrchestrator:
    """Returns or raises the next scripted outcome."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def run(self, request, api_key):
        self.requests.append((request, api_key))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def user_settings():
    return SimpleNamespace(api_key="sk-or-v1-abcdefghijkl", model="openai/gpt-4o")


@pytest.fixture
def session_config():
    return PipelineConfig(max_retries=2, timeout_ms=1500)


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_success_completes(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator(make_result("fine"))
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        result = await session.submit("  Thanks for the help!  ")

        assert result.verdict_reason == "fine"
        assert session.status == SessionStatus.COMPLETE
        assert session.has_result
        assert session.current_text == "Thanks for the help!"
        assert session.error is None

    @pytest.mark.asyncio
    async def test_orchestrator_awaited_once_per_submit(self, user_settings, session_config):
        orchestrator = AsyncMock()
        orchestrator.run.return_value = make_result("mocked")
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        result = await session.submit("hello")

        orchestrator.run.assert_awaited_once()
        assert result.verdict_reason == "mocked"

    @pytest.mark.asyncio
    async def test_request_built_from_settings_and_config(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator(make_result("fine"))
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        await session.submit("hello")

        request, api_key = orchestrator.requests[0]
        assert api_key == "sk-or-v1-abcdefghijkl"
        assert request.model == "openai/gpt-4o"
        assert request.max_retries == 2
        assert request.timeout_ms == 1500
        assert request.cancel_token is not None

    @pytest.mark.asyncio
    async def test_settings_reread_on_each_submit(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator(make_result("a"), make_result("b"))
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        await session.submit("one")
        user_settings.api_key = "sk-or-v1-rotated-key-0000"
        user_settings.model = "anthropic/claude-3-haiku"
        await session.submit("two")

        request, api_key = orchestrator.requests[1]
        assert api_key == "sk-or-v1-rotated-key-0000"
        assert request.model == "anthropic/claude-3-haiku"

    @pytest.mark.asyncio
    async def test_listeners_see_running_then_complete(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator(make_result("fine"))
        session = AnalysisSession(user_settings, orchestrator, config=session_config)
        seen = []
        session.subscribe(lambda snap: seen.append(snap.status))

        await session.submit("hello")

        assert seen == [SessionStatus.RUNNING, SessionStatus.COMPLETE]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, user_settings, session_config):
        session = AnalysisSession(
            user_settings, ScriptedOrchestrator(make_result("x")), config=session_config
        )
        seen = []
        unsubscribe = session.subscribe(seen.append)
        unsubscribe()

        await session.submit("hello")
        assert seen == []


class TestRejection:
    @pytest.mark.asyncio
    async def test_blank_text_rejected_without_state_change(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)
        seen = []
        session.subscribe(seen.append)

        with pytest.raises(SubmissionRejected) as exc_info:
            await session.submit("   ")

        assert exc_info.value.error.type == "VALIDATION"
        assert session.status == SessionStatus.IDLE
        assert seen == []
        assert orchestrator.requests == []

    @pytest.mark.asyncio
    async def test_missing_key_rejected(self, session_config):
        settings = SimpleNamespace(api_key="", model="openai/gpt-4o")
        orchestrator = ScriptedOrchestrator()
        session = AnalysisSession(settings, orchestrator, config=session_config)

        with pytest.raises(SubmissionRejected) as exc_info:
            await session.submit("hello")

        assert exc_info.value.error.type == "NO_API_KEY"
        assert session.status == SessionStatus.IDLE
        assert orchestrator.requests == []

    @pytest.mark.asyncio
    async def test_rejection_keeps_previous_result(self, user_settings, session_config):
        session = AnalysisSession(
            user_settings, ScriptedOrchestrator(make_result("kept")), config=session_config
        )
        await session.submit("first")

        with pytest.raises(SubmissionRejected):
            await session.submit("")

        assert session.status == SessionStatus.COMPLETE
        assert session.result.verdict_reason == "kept"


class TestFailure:
    @pytest.mark.asyncio
    async def test_invalid_key_needs_new_key(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator(
            PipelineError(ErrorKind.INVALID_API_KEY, "401 from provider")
        )
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        result = await session.submit("hello")

        assert result is None
        assert session.status == SessionStatus.FAILED
        assert session.has_error
        assert session.error.type == "INVALID_API_KEY"
        assert session.error.needs_new_key
        assert session.error.message == "Your API key is invalid. Please check and update it."

    @pytest.mark.asyncio
    async def test_failure_then_retry_succeeds(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator(
            PipelineError(ErrorKind.SERVER_ERROR, "502"),
            make_result("second time lucky"),
        )
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        await session.submit("hello")
        assert session.status == SessionStatus.FAILED

        result = await session.retry()
        assert result.verdict_reason == "second time lucky"
        assert session.status == SessionStatus.COMPLETE
        assert session.error is None
        assert orchestrator.requests[1][0].text == "hello"

    @pytest.mark.asyncio
    async def test_retry_with_nothing_submitted(self, user_settings, session_config):
        orchestrator = ScriptedOrchestrator()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)
        assert await session.retry() is None
        assert orchestrator.requests == []

    def test_user_messages_per_kind(self):
        assert to_user_error(PipelineError(ErrorKind.TIMEOUT, "x")).message == (
            "Request timed out. Please try again."
        )
        assert not to_user_error(PipelineError(ErrorKind.RATE_LIMITED, "x")).needs_new_key

    def test_unknown_kind_keeps_pipeline_message(self):
        error = to_user_error(PipelineError(ErrorKind.INVALID_RESPONSE, "Invalid verdict: meh"))
        assert error.message == "Invalid verdict: meh"


class TestCancelAndSupersede:
    @pytest.mark.asyncio
    async def test_cancel_returns_to_idle_without_error(self, user_settings, session_config):
        orchestrator = GatedOrchestrator()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        task = asyncio.ensure_future(session.submit("hello"))
        await settle()
        assert session.is_running

        session.cancel()
        result = await asyncio.wait_for(task, timeout=1)

        assert result is None
        assert session.status == SessionStatus.IDLE
        assert session.error is None
        assert orchestrator.requests[0].cancel_token.cancelled

    @pytest.mark.asyncio
    async def test_new_submit_supersedes_in_flight(self, user_settings, session_config):
        orchestrator = GatedOrchestrator()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        first = asyncio.ensure_future(session.submit("first"))
        await settle()
        second = asyncio.ensure_future(session.submit("second"))
        await settle()

        assert orchestrator.requests[0].cancel_token.cancelled
        assert not orchestrator.requests[1].cancel_token.cancelled

        orchestrator.gates[1].set()
        assert await asyncio.wait_for(first, timeout=1) is None
        result = await asyncio.wait_for(second, timeout=1)

        assert result.verdict_reason == "second"
        assert session.result.verdict_reason == "second"
        assert session.current_text == "second"
        assert session.status == SessionStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_stale_result_is_dropped(self, user_settings, session_config):
        """A superseded run that finishes anyway must not overwrite state."""

        class IgnoresCancel:
            def __init__(self):
                self.gates = []

            async def run(self, request, api_key):
                gate = asyncio.Event()
                self.gates.append(gate)
                await gate.wait()
                return make_result(request.text)

        orchestrator = IgnoresCancel()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        first = asyncio.ensure_future(session.submit("first"))
        await settle()
        second = asyncio.ensure_future(session.submit("second"))
        await settle()

        orchestrator.gates[1].set()
        await asyncio.wait_for(second, timeout=1)
        orchestrator.gates[0].set()
        assert await asyncio.wait_for(first, timeout=1) is None

        assert session.result.verdict_reason == "second"

    @pytest.mark.asyncio
    async def test_stale_failure_is_dropped(self, user_settings, session_config):
        class FailsLate:
            def __init__(self):
                self.gates = []

            async def run(self, request, api_key):
                gate = asyncio.Event()
                self.gates.append(gate)
                await gate.wait()
                if request.text == "first":
                    raise PipelineError(ErrorKind.SERVER_ERROR, "late failure")
                return make_result(request.text)

        orchestrator = FailsLate()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        first = asyncio.ensure_future(session.submit("first"))
        await settle()
        second = asyncio.ensure_future(session.submit("second"))
        await settle()

        orchestrator.gates[1].set()
        await asyncio.wait_for(second, timeout=1)
        orchestrator.gates[0].set()
        await asyncio.wait_for(first, timeout=1)

        assert session.status == SessionStatus.COMPLETE
        assert session.error is None

    @pytest.mark.asyncio
    async def test_reset_clears_everything_and_is_idempotent(self, user_settings, session_config):
        session = AnalysisSession(
            user_settings, ScriptedOrchestrator(make_result("x")), config=session_config
        )
        await session.submit("hello")

        session.reset()
        session.reset()

        assert session.status == SessionStatus.IDLE
        assert session.current_text == ""
        assert session.result is None
        assert session.error is None

    @pytest.mark.asyncio
    async def test_close_cancels_and_refuses_new_work(self, user_settings, session_config):
        orchestrator = GatedOrchestrator()
        session = AnalysisSession(user_settings, orchestrator, config=session_config)

        task = asyncio.ensure_future(session.submit("hello"))
        await settle()
        session.close()

        assert await asyncio.wait_for(task, timeout=1) is None
        assert orchestrator.requests[0].cancel_token.cancelled
        assert session.closed
        with pytest.raises(RuntimeError):
            await session.submit("again")

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, user_settings, session_config):
        async with AnalysisSession(
            user_settings, ScriptedOrchestrator(), config=session_config
        ) as session:
            assert not session.closed
        assert session.closed


class TestHistory:
    @pytest.mark.asyncio
    async def test_success_is_recorded(self, user_settings, session_config, history):
        session = AnalysisSession(
            user_settings,
            ScriptedOrchestrator(make_result("logged", verdict="high_risk")),
            history=history,
            config=session_config,
        )

        await session.submit("You never listen.")

        entries = history.list()
        assert len(entries) == 1
        assert entries[0].original_message == "You never listen."
        assert entries[0].model == "openai/gpt-4o"
        assert entries[0].result.verdict_reason == "logged"

    @pytest.mark.asyncio
    async def test_failure_is_not_recorded(self, user_settings, session_config, history):
        session = AnalysisSession(
            user_settings,
            ScriptedOrchestrator(PipelineError(ErrorKind.SERVER_ERROR, "down")),
            history=history,
            config=session_config,
        )
        await session.submit("hello")
        assert history.count() == 0

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_session(self, user_settings, session_config):
        class BrokenHistory:
            def add(self, entry):
                raise OSError("disk full")

            def get(self, entry_id):
                return None

        session = AnalysisSession(
            user_settings,
            ScriptedOrchestrator(make_result("ok")),
            history=BrokenHistory(),
            config=session_config,
        )
        result = await session.submit("hello")
        assert result is not None
        assert session.status == SessionStatus.COMPLETE

    def test_load_from_history(self, user_settings, session_config, history):
        entry = history.add(
            HistoryEntry(original_message="old draft", result=make_result("past"), model="m")
        )
        session = AnalysisSession(
            user_settings, ScriptedOrchestrator(), history=history, config=session_config
        )

        assert session.load_from_history(entry.id)
        assert session.status == SessionStatus.COMPLETE
        assert session.current_text == "old draft"
        assert session.result.verdict_reason == "past"

    def test_load_unknown_entry(self, user_settings, session_config, history):
        session = AnalysisSession(
            user_settings, ScriptedOrchestrator(), history=history, config=session_config
        )
        assert not session.load_from_history("missing")
        assert session.status == SessionStatus.IDLE
