import pytest
from pydantic import ValidationError

from config.platform import AppConfig, detect_platform, get_tmp_dir


def test_defaults():
    config = AppConfig()
    assert config.tonie_api_base == "https://api.tonie.cloud/v2"
    assert config.max_upload_bytes == 1024**3
    assert config.max_remote_bytes == 512 * 1024**2
    assert config.max_filename_length == 128
    assert "mp3" in config.supported_formats


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TONIE_EMAIL", "svc@example.com")
    monkeypatch.setenv("TONIE_PASSWORD", "pw")
    monkeypatch.setenv("APP_PASSWORD", "letmein")
    monkeypatch.setenv("TMP_DIR", str(tmp_path))
    monkeypatch.setenv("DOWNLOAD_TIMEOUT", "12.5")
    monkeypatch.setenv("STRICT_MULTIPART", "true")
    monkeypatch.setenv("TONIE_API_BASE", "https://api.test/v2/")

    config = AppConfig.from_env()

    assert config.tonie_email == "svc@example.com"
    assert config.app_password == "letmein"
    assert config.tmp_dir == str(tmp_path)
    assert config.download_timeout_seconds == 12.5
    assert config.strict_multipart is True
    assert config.tonie_api_base == "https://api.test/v2"
    assert config.missing_settings() == []


def test_overrides_win(monkeypatch):
    monkeypatch.setenv("APP_PASSWORD", "from-env")
    config = AppConfig.from_env({"app_password": "override"})
    assert config.app_password == "override"


def test_missing_settings(monkeypatch):
    for name in ("TONIE_EMAIL", "TONIE_PASSWORD", "APP_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    assert AppConfig.from_env().missing_settings() == ["TONIE_EMAIL", "TONIE_PASSWORD", "APP_PASSWORD"]


def test_config_is_frozen():
    config = AppConfig(app_password="x")
    with pytest.raises(ValidationError):
        config.app_password = "y"


@pytest.mark.parametrize(
    "env, expected",
    [
        ({"VERCEL": "1"}, "vercel"),
        ({"RAILWAY_ENVIRONMENT_ID": "abc"}, "railway"),
        ({"FLY_APP_NAME": "app"}, "fly"),
        ({}, "generic"),
    ],
)
def test_detect_platform(monkeypatch, env, expected):
    for name in ("VERCEL", "RAILWAY_ENVIRONMENT_ID", "FLY_APP_NAME"):
        monkeypatch.delenv(name, raising=False)
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    assert detect_platform() == expected


def test_tmp_dir_default(monkeypatch):
    monkeypatch.delenv("TMP_DIR", raising=False)
    assert get_tmp_dir()
