import pytest

from ses_dispatcher.config import DispatcherConfig, load_config, load_server_settings
from ses_dispatcher.errors import ConfigurationError


def test_defaults():
    config = load_config()
    assert config == DispatcherConfig()
    assert config.rate_limit == 20
    assert config.idle_poll_interval == 30.0
    assert config.throttle_tick == 1.0
    assert config.drain_poll_interval == 1.0
    assert config.default_sender_address is None


def test_environment_values(monkeypatch):
    monkeypatch.setenv("SESD_RATE_LIMIT", "14")
    monkeypatch.setenv("SESD_IDLE_POLL_INTERVAL", "5")
    monkeypatch.setenv("SESD_DEFAULT_FROM", "noreply@example.com")
    monkeypatch.setenv("SESD_DEFAULT_FROM_NAME", "Example")
    monkeypatch.setenv("SESD_LOG_DELIVERY_ACTIVITY", "yes")

    config = load_config()

    assert config.rate_limit == 14
    assert config.idle_poll_interval == 5.0
    assert config.default_sender_address == "noreply@example.com"
    assert config.default_sender_name == "Example"
    assert config.log_delivery_activity is True


def test_config_file_wins_over_environment(tmp_path, monkeypatch):
    path = tmp_path / "config.ini"
    path.write_text("[dispatcher]\nrate_limit = 7\nthrottle_tick = 2\n\n[server]\nport = 9001\napi_token = secret\n")
    monkeypatch.setenv("SESD_RATE_LIMIT", "14")
    monkeypatch.setenv("SESD_PORT", "8080")

    config = load_config(str(path))
    server = load_server_settings(str(path))

    assert config.rate_limit == 7
    assert config.throttle_tick == 2.0
    assert server.port == 9001
    assert server.api_token == "secret"
    assert "secret" not in repr(server)


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "env.ini"
    path.write_text("[dispatcher]\ndefault_from = env@example.com\n")
    monkeypatch.setenv("SESD_CONFIG", str(path))

    assert load_config().default_sender_address == "env@example.com"


def test_invalid_value_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("SESD_RATE_LIMIT", "fast")
    monkeypatch.setenv("SESD_LOG_DELIVERY_ACTIVITY", "maybe")

    config = load_config()

    assert config.rate_limit == 20
    assert config.log_delivery_activity is False


def test_overrides_win_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("SESD_RATE_LIMIT", "14")
    assert load_config(rate_limit=3).rate_limit == 3
    assert load_config(rate_limit=None).rate_limit == 14


@pytest.mark.parametrize("field, value", [
    ("rate_limit", 0),
    ("idle_poll_interval", -1),
    ("throttle_tick", -0.5),
    ("throttle_tick", 0.5),
    ("result_queue_size", 0),
])
def test_out_of_range_values_raise(field, value):
    with pytest.raises(ConfigurationError):
        load_config(**{field: value})
