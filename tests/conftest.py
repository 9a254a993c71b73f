"""Test fixtures -- scripted OpenRouter endpoint, sample analyses, temp stores."""

import json

import httpx
import pytest

from message_clearance.config import PipelineConfig
from message_clearance.storage.history import HistoryStore
from message_clearance.storage.settings import SettingsStore


class FakeOpenRouter:
    """Scripted chat-completion endpoint served through httpx.MockTransport.

    Each reply is either an exception to raise or a (status, body) pair; a
    dict body is sent as JSON, a str body as text. The last reply repeats
    once the script runs out.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def analysis_payload():
    """A well-formed analysis as the model is asked to return it."""
    return {
        "verdict": "needs_edit",
        "verdictReason": "The deadline reads as a demand.",
        "risks": [
            {
                "text": "ASAP",
                "issue": "Sounds urgent and curt",
                "why": "Reader may feel pressured",
            }
        ],
        "missing": ["A concrete deadline"],
        "rewrites": {
            "short": "Could you send the report by Friday?",
            "warm": "Hope your week is going well! Could you send the report by Friday?",
            "confident": "Please send the report by Friday.",
        },
        "suggestedOpener": "Hope your week is going well!",
    }


@pytest.fixture
def completion():
    """Wrap model content in an OpenRouter chat-completion body."""

    def build(content) -> dict:
        if not isinstance(content, str):
            content = json.dumps(content)
        return {"choices": [{"message": {"role": "assistant", "content": content}}]}

    return build


@pytest.fixture
def fake_openrouter():
    return FakeOpenRouter


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(
        api_url="https://openrouter.test/api/v1/chat/completions",
        timeout_ms=2000,
        max_retries=3,
        db_path=tmp_path / "clearance.db",
    )


@pytest.fixture
def settings(config, monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    return SettingsStore(config.db_path)


@pytest.fixture
def history(config):
    return HistoryStore(config.db_path)
