# tests/unit/test_config.py
import pytest

from plugins.media.stub.impl import StubMedia
from plugins.verifiers.gemini.impl import GeminiVerifier
from sdk.config import AppConfig, GradingPolicy, load_config
from sdk.registry import Registry, registry_from_config, verifier_from_config


def test_defaults_match_grading_rules():
    cfg = AppConfig()
    g = cfg.grading
    assert (g.tick_ms, g.check_interval_ms, g.text_penalty, g.pointer_penalty) == (100, 3000, 10, 5)
    assert (g.pointer_window_ms, g.pointer_tolerance_px) == (150, 50.0)
    assert (cfg.session.min_confidence, cfg.session.settle_delay_ms) == (70, 1000)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LESSONCAST_VERIFIER_API_KEY", "env-key")
    monkeypatch.setenv("LESSONCAST_USER", "ms-lee")
    monkeypatch.setenv("LESSONCAST_MEDIA", "plugins.media.screen_mss.impl:ScreenMedia")
    cfg = load_config()
    assert cfg.verifier.api_key == "env-key"
    assert cfg.created_by == "ms-lee"
    assert cfg.plugins["media"] == "plugins.media.screen_mss.impl:ScreenMedia"


def test_invalid_policy_is_rejected():
    with pytest.raises(ValueError):
        GradingPolicy(tick_ms=0)


def test_registry_resolves_targets():
    registry = Registry({"media": "plugins.media.stub.impl:StubMedia"})
    assert isinstance(registry.create("media", deny=True), StubMedia)

    registry.register("media", "plugins.media.stub.impl:StubMedia")
    assert registry.target("media") == "plugins.media.stub.impl:StubMedia"
    with pytest.raises(ModuleNotFoundError):
        registry.create("no.such.module:Thing")


def test_verifier_built_from_settings(monkeypatch):
    monkeypatch.setenv("LESSONCAST_VERIFIER_API_KEY", "abc")
    monkeypatch.setenv("LESSONCAST_VERIFIER_ENDPOINT", "https://proxy.test/v1/")
    cfg = load_config()
    verifier = verifier_from_config(registry_from_config(cfg), cfg)
    assert isinstance(verifier, GeminiVerifier)
    assert verifier.api_key == "abc"
    assert verifier.endpoint == "https://proxy.test/v1"
