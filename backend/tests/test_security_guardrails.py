import pytest

from core import config as config_module


def _reset_settings_cache():
    config_module.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_settings_after_test():
    yield
    _reset_settings_cache()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_default_secrets_are_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    _reset_settings_cache()

    with pytest.raises(ValueError, match="default JWT secret"):
        config_module.get_settings()


def test_local_allows_dev_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    _reset_settings_cache()

    settings = config_module.get_settings()
    assert settings.app_env == "local"
    assert settings.staleness_yellow_minutes == 40
    assert settings.staleness_red_minutes == 60


@pytest.mark.parametrize("yellow,red", [("60", "40"), ("40", "40"), ("0", "60")])
def test_unordered_staleness_thresholds_are_blocked(monkeypatch, yellow, red):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("STALENESS_YELLOW_MINUTES", yellow)
    monkeypatch.setenv("STALENESS_RED_MINUTES", red)
    _reset_settings_cache()

    with pytest.raises(ValueError, match="0 < yellow < red"):
        config_module.get_settings()


def test_sweep_interval_must_be_positive(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("ESCALATION_SWEEP_INTERVAL_MINUTES", "0")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="at least 1"):
        config_module.get_settings()


@pytest.mark.parametrize("minutes", ["7", "45", "90"])
def test_sweep_interval_must_divide_the_hour(monkeypatch, minutes):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("ESCALATION_SWEEP_INTERVAL_MINUTES", minutes)
    _reset_settings_cache()

    with pytest.raises(ValueError, match="must divide 60"):
        config_module.get_settings()


@pytest.mark.parametrize("minutes", ["1", "15", "60"])
def test_sweep_interval_dividing_the_hour_is_accepted(monkeypatch, minutes):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("ESCALATION_SWEEP_INTERVAL_MINUTES", minutes)
    _reset_settings_cache()

    assert config_module.get_settings().escalation_sweep_interval_minutes == int(minutes)
