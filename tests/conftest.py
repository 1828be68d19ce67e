import json

import pytest

from yield_chat.backend.observability import timing


def parse_frames(body: str) -> list:
    """Decode an SSE UI message stream body into frame dicts ([DONE] dropped)."""
    frames = []
    for event in body.split("\n\n"):
        event = event.strip()
        if not event:
            continue
        assert event.startswith("data: "), event
        payload = event[len("data: "):]
        if payload == "[DONE]":
            continue
        frames.append(json.loads(payload))
    return frames


@pytest.fixture
def demo_env(monkeypatch):
    """No model credential configured."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def live_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-not-a-real-key")


@pytest.fixture(autouse=True)
def reset_timing():
    timing.clear_records()
    yield
    timing.clear_records()
