import asyncio
import json
from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.clients.openrouter import OpenRouterClient
from src.core.exceptions import (
    AllModelsFailedError,
    NetworkError,
    NoAvailableModelsError,
)
from src.models.assistant import (
    AttemptRecord,
    CascadeSuccess,
    ChatFailure,
    ChatReply,
    MessageRole,
)
from src.services.assistant.prompts import DEFAULT_SYSTEM_PROMPT
from src.services.assistant.session import ConversationSession
from src.services.orchestration.cascade import CascadeOrchestrator


def _success(text: str = "Sure!", model_id: str = "m1", attempts: int = 1, retried: bool = False):
    return CascadeSuccess(model_id=model_id, response_text=text, attempt_count=attempts, retried=retried)


def _session(*outcomes) -> tuple[ConversationSession, MagicMock]:
    orchestrator = MagicMock()
    orchestrator.send_with_cascade = AsyncMock(side_effect=list(outcomes))
    return ConversationSession(orchestrator), orchestrator


def _sent_messages(orchestrator: MagicMock, call: int = 0) -> list[tuple[str, str]]:
    messages = orchestrator.send_with_cascade.await_args_list[call].args[0]
    return [(m.role.value, m.content) for m in messages]


class TestAsk:
    @pytest.mark.asyncio
    async def test_success_appends_user_then_assistant(self) -> None:
        session, orchestrator = _session(_success("Hello there", "a", attempts=2))

        result = await session.ask("hi")

        assert isinstance(result, ChatReply)
        assert result.success is True
        assert result.text == "Hello there"
        assert result.model_id == "a"
        assert result.attempts == 2
        assert result.retried is False

        history = session.get_history()
        assert [(m.role, m.content) for m in history] == [
            (MessageRole.USER, "hi"),
            (MessageRole.ASSISTANT, "Hello there"),
        ]
        assert _sent_messages(orchestrator) == [
            ("system", DEFAULT_SYSTEM_PROMPT),
            ("user", "hi"),
        ]

    @pytest.mark.asyncio
    async def test_failure_keeps_only_user_turn(self) -> None:
        attempts = [
            AttemptRecord(model_id="b", error_kind="ModelTimeoutError", message="timed out"),
            AttemptRecord(model_id="a", error_kind="NetworkError", message="down"),
        ]
        session, _ = _session(AllModelsFailedError(attempts))

        result = await session.ask("hi")

        assert isinstance(result, ChatFailure)
        assert result.success is False
        assert result.error_kind == "AllModelsFailedError"
        assert result.attempts == 2
        assert [f.model_id for f in result.failures] == ["b", "a"]
        assert "All 2 models failed" in result.message

        history = session.get_history()
        assert len(history) == 1
        assert history[0].role is MessageRole.USER

    @pytest.mark.asyncio
    async def test_failure_before_any_attempt(self) -> None:
        session, _ = _session(NoAvailableModelsError("No free models available for cascade"))

        result = await session.ask("hi")

        assert isinstance(result, ChatFailure)
        assert result.error_kind == "NoAvailableModelsError"
        assert result.message == "No free models available for cascade"
        assert result.attempts == 0

    @pytest.mark.asyncio
    async def test_history_is_sent_on_follow_up(self) -> None:
        session, orchestrator = _session(_success("first answer"), NetworkError("down"), _success("third"))

        await session.ask("one")
        await session.ask("two")
        await session.ask("three")

        assert _sent_messages(orchestrator, 2)[1:] == [
            ("user", "one"),
            ("assistant", "first answer"),
            ("user", "two"),
            ("user", "three"),
        ]
        assert len(session.get_history()) == 5

    @pytest.mark.asyncio
    async def test_options_and_timeout_are_forwarded(self) -> None:
        session, orchestrator = _session(_success())

        await session.ask("hi", {"temperature": 0.3}, timeout=5)

        call = orchestrator.send_with_cascade.await_args
        assert call.args[1] == {"temperature": 0.3}
        assert call.args[2] == 5

    @pytest.mark.asyncio
    async def test_overlapping_asks_are_serialized(self) -> None:
        release_first = asyncio.Event()

        async def dispatch(messages, options=None, timeout=None):
            if len(messages) == 2:
                await release_first.wait()
                return _success("answer one")
            return _success("answer two")

        orchestrator = MagicMock()
        orchestrator.send_with_cascade = AsyncMock(side_effect=dispatch)
        session = ConversationSession(orchestrator)

        first = asyncio.create_task(session.ask("one"))
        second = asyncio.create_task(session.ask("two"))
        await asyncio.sleep(0)
        release_first.set()
        await asyncio.gather(first, second)

        assert [m.content for m in session.get_history()] == [
            "one",
            "answer one",
            "two",
            "answer two",
        ]

    @pytest.mark.asyncio
    async def test_clear_during_request_drops_stale_answer(self) -> None:
        gate = asyncio.Event()
        started = asyncio.Event()

        async def dispatch(messages, options=None, timeout=None):
            started.set()
            await gate.wait()
            return _success("stale")

        orchestrator = MagicMock()
        orchestrator.send_with_cascade = AsyncMock(side_effect=dispatch)
        session = ConversationSession(orchestrator)

        task = asyncio.create_task(session.ask("hi"))
        await started.wait()
        session.clear_history()
        gate.set()
        result = await task

        assert result.success is True
        assert session.get_history() == []


class TestAskOneOff:
    @pytest.mark.asyncio
    async def test_does_not_read_or_write_history(self) -> None:
        session, orchestrator = _session(_success("first"), _success("standalone"))
        await session.ask("remember me")

        result = await session.ask_one_off("what is a condo?")

        assert isinstance(result, ChatReply)
        assert result.text == "standalone"
        assert _sent_messages(orchestrator, 1) == [
            ("system", DEFAULT_SYSTEM_PROMPT),
            ("user", "what is a condo?"),
        ]
        assert len(session.get_history()) == 2

    @pytest.mark.asyncio
    async def test_failure_is_returned_not_raised(self) -> None:
        session, _ = _session(NetworkError("catalog down"))

        result = await session.ask_one_off("hi")

        assert isinstance(result, ChatFailure)
        assert result.error_kind == "NetworkError"
        assert session.get_history() == []


class TestHistoryManagement:
    @pytest.mark.asyncio
    async def test_get_history_returns_copy(self) -> None:
        session, _ = _session(_success())
        await session.ask("hi")

        snapshot = session.get_history()
        snapshot.clear()

        assert len(session.get_history()) == 2

    @pytest.mark.asyncio
    async def test_clear_history(self) -> None:
        session, _ = _session(_success())
        await session.ask("hi")

        session.clear_history()

        assert session.get_history() == []

    @pytest.mark.asyncio
    async def test_set_system_prompt(self) -> None:
        session, orchestrator = _session(_success())
        session.set_system_prompt("You are a terse assistant.")

        await session.ask("hi")

        assert session.system_prompt == "You are a terse assistant."
        assert _sent_messages(orchestrator)[0] == ("system", "You are a terse assistant.")


class TestResultSerialization:
    def test_reply_dumps_camel_case(self) -> None:
        reply = ChatReply(text="ok", model_id="a", attempts=2)
        assert reply.model_dump(by_alias=True) == {
            "success": True,
            "text": "ok",
            "modelId": "a",
            "attempts": 2,
            "retried": False,
        }

    def test_failure_dumps_camel_case(self) -> None:
        failure = ChatFailure(error_kind="NetworkError", message="down")
        dumped = failure.model_dump(by_alias=True)
        assert dumped["success"] is False
        assert dumped["errorKind"] == "NetworkError"
        assert dumped["attempts"] == 0


class TestSessionThroughCascade:
    """会话 -> 真实编排器 -> OpenRouterClient(MockTransport)"""

    CATALOG = {
        "data": [
            {"id": "a", "context_length": 8000, "pricing": {"prompt": "0"}},
            {"id": "b", "context_length": 128000, "pricing": {"prompt": "0"}},
        ]
    }

    def _session(self, chat: Callable[[str], Awaitable[httpx.Response]]) -> ConversationSession:
        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/models"):
                return httpx.Response(200, json=self.CATALOG)
            return await chat(json.loads(request.content)["model"])

        client = OpenRouterClient(
            api_key="sk-test",
            base_url="https://openrouter.test/api/v1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        orchestrator = CascadeOrchestrator(client, attempt_timeout=0.05, sleep=AsyncMock())
        return ConversationSession(orchestrator)

    @pytest.mark.asyncio
    async def test_slow_top_candidate_falls_through_to_next(self) -> None:
        async def chat(model: str) -> httpx.Response:
            if model == "b":
                await asyncio.sleep(5)
            return httpx.Response(
                200, json={"model": model, "choices": [{"message": {"content": f"hello from {model}"}}]}
            )

        session = self._session(chat)

        result = await session.ask("hi")

        assert result.model_dump(by_alias=True) == {
            "success": True,
            "text": "hello from a",
            "modelId": "a",
            "attempts": 2,
            "retried": False,
        }
        assert [m.role for m in session.get_history()] == [MessageRole.USER, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_all_candidates_down_keeps_user_turn(self) -> None:
        async def chat(model: str) -> httpx.Response:
            return httpx.Response(503, json={"error": {"message": f"{model} overloaded"}})

        session = self._session(chat)

        result = await session.ask("hi")

        assert isinstance(result, ChatFailure)
        assert result.error_kind == "AllModelsFailedError"
        assert result.attempts == 2
        assert [(f.model_id, f.error_kind) for f in result.failures] == [
            ("b", "NetworkError"),
            ("a", "NetworkError"),
        ]
        assert [m.content for m in session.get_history()] == ["hi"]
