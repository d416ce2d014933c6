import pytest

from gaian_voice.config import DEFAULT_APOLOGY, Settings, get_settings
from gaian_voice.coordinator import CoordinatorConfig


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_cli_defaults_follow_environment(monkeypatch):
    monkeypatch.setenv("GAIAN_VOICE_GATEWAY_BASE_URL", "http://gaian.local:8080")
    monkeypatch.setenv("GAIAN_VOICE_STT_MODEL", "tiny")
    monkeypatch.setenv("GAIAN_VOICE_STT_DEVICE", "cuda")
    monkeypatch.setenv("GAIAN_VOICE_LOG_LEVEL", "DEBUG")

    from gaian_voice.main import build_parser

    args = build_parser().parse_args([])
    assert args.base_url == "http://gaian.local:8080"
    assert args.stt_model == "tiny"
    assert args.stt_device == "cuda"
    assert args.log_level == "DEBUG"
    assert args.continuous is False


def test_command_line_overrides_environment(monkeypatch):
    monkeypatch.setenv("GAIAN_VOICE_GATEWAY_BASE_URL", "http://gaian.local:8080")

    from gaian_voice.main import build_parser

    args = build_parser().parse_args(["--base-url", "http://other:3000", "--continuous"])
    assert args.base_url == "http://other:3000"
    assert args.continuous is True


def test_coordinator_delays_come_from_settings(monkeypatch):
    monkeypatch.setenv("GAIAN_VOICE_REARM_DELAY_S", "0.25")
    monkeypatch.setenv("GAIAN_VOICE_RECOVERY_REARM_DELAY_S", "0.05")

    config = CoordinatorConfig.from_settings(get_settings())

    assert config.rearm_delay_s == 0.25
    assert config.recovery_rearm_delay_s == 0.05
    assert config.submit_settle_delay_s == 0.5
    assert config.capture_error_rearm_delay_s == 0.5
    assert config.apology_text == DEFAULT_APOLOGY


def test_default_settings_match_the_service_contract(monkeypatch):
    for name in ("GAIAN_VOICE_REPLY_PATH", "GAIAN_VOICE_SPEECH_PATH", "GAIAN_VOICE_GATEWAY_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.reply_path == "/api/chat"
    assert settings.speech_path == "/api/speech"
    assert settings.gateway_timeout is None
    assert settings.rearm_delay_s == 0.5
    assert settings.recovery_rearm_delay_s == 0.1


def test_build_coordinator_wires_components(monkeypatch):
    monkeypatch.setenv("GAIAN_VOICE_SUBMIT_SETTLE_DELAY_S", "0.3")

    from gaian_voice.main import build_coordinator, build_parser

    settings = get_settings()
    args = build_parser(settings).parse_args(["--base-url", "http://gaian.test"])
    coordinator, log = build_coordinator(args, settings)

    assert coordinator.config.submit_settle_delay_s == 0.3
    assert coordinator.continuous is False
    assert log.directive.text == settings.directive.strip()
