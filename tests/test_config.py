from yield_chat.backend import config


def test_absent_key_is_demo(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert config.get_api_key() is None
    assert config.has_live_credentials() is False


def test_placeholder_keys_are_demo(monkeypatch):
    for placeholder in config.PLACEHOLDER_API_KEYS:
        monkeypatch.setenv("OPENAI_API_KEY", placeholder)
        assert config.has_live_credentials() is False


def test_real_key_is_live_and_read_per_call(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "  sk-live-123  ")
    assert config.get_api_key() == "sk-live-123"
    assert config.has_live_credentials() is True
    monkeypatch.delenv("OPENAI_API_KEY")
    assert config.has_live_credentials() is False
