import pytest

from weatherwidget.settings import EnvSettings, build_settings, merge_env_overrides


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "weather.yaml"
    path.write_text(
        "api_url: https://api.openweathermap.org/data/2.5\n"
        "default_location:\n"
        "  lat: 40.7128\n"
        "  lon: -74.0060\n"
        "  name: New York, NY\n"
        "cache_ttl: 900\n",
        encoding="utf-8",
    )
    return path


def _env(**values):
    return EnvSettings(_env_file=None, **values)


def test_env_overrides_win_over_yaml():
    raw = {"api_key": None, "default_location": {"lat": 1, "lon": 2, "name": "Here"}}
    env = _env(
        openweather_api_key="secret",
        weather_default_lat="51.5",
        weather_default_location="London",
    )

    merged = merge_env_overrides(raw, env)

    assert merged["api_key"] == "secret"
    assert merged["default_location"] == {"lat": "51.5", "lon": 2, "name": "London"}
    assert raw["default_location"]["lat"] == 1


def test_blank_env_values_are_ignored():
    env = _env(openweather_api_key="   ")

    assert env.openweather_api_key is None
    assert merge_env_overrides({"api_key": "from-yaml"}, env)["api_key"] == "from-yaml"


def test_build_settings_reads_yaml(config_file, tmp_path):
    env = _env(
        weather_config_path=config_file,
        weather_db_path=tmp_path / "weather.db",
        openweather_api_key="secret",
    )

    settings = build_settings(env)

    assert settings.config_path == config_file
    assert settings.db_path == tmp_path / "weather.db"
    assert settings.weather["api_key"] == "secret"
    assert settings.weather["cache_ttl"] == 900


def test_missing_config_file(tmp_path):
    env = _env(weather_config_path=tmp_path / "missing.yaml")

    with pytest.raises(FileNotFoundError):
        build_settings(env)


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "weather.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="YAML mapping"):
        build_settings(_env(weather_config_path=path))


def test_log_level_is_validated():
    assert _env(weather_log_level="debug").weather_log_level == "DEBUG"
    with pytest.raises(ValueError):
        _env(weather_log_level="chatty")
