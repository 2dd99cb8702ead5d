"""Tests for settings loading"""

import pytest

from storefront.utils.config import Settings, load_settings
from storefront.utils.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ("STOREFRONT_API_BASE_URL", "STOREFRONT_DATA_DIR", "STOREFRONT_LOG_LEVEL", "SHOP_API"):
        monkeypatch.delenv(var, raising=False)
    # load_dotenv() looks for a .env in the working directory
    monkeypatch.chdir(tmp_path)


def test_missing_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.yaml")
    assert settings == Settings()
    assert settings.auth.otp_max_attempts == 5
    assert settings.auth.otp_ttl_minutes == 10
    assert settings.storage.namespace == "storefront"


def test_yaml_with_env_substitution(tmp_path, monkeypatch):
    monkeypatch.setenv("SHOP_API", "https://shop.example/api")
    path = tmp_path / "storefront.yaml"
    path.write_text(
        "api:\n"
        "  base_url: ${SHOP_API}\n"
        "  max_retries: 2\n"
        "storage:\n"
        "  namespace: ${SHOP_NAMESPACE:tenant-a}\n"
        "logging:\n"
        "  format: console\n",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.api.base_url == "https://shop.example/api"
    assert settings.api.max_retries == 2
    assert settings.storage.namespace == "tenant-a"
    assert settings.logging.format == "console"


def test_env_overrides_win(tmp_path, monkeypatch):
    path = tmp_path / "storefront.yaml"
    path.write_text("api:\n  base_url: http://from-file/api\n", encoding="utf-8")
    monkeypatch.setenv("STOREFRONT_API_BASE_URL", "http://from-env/api")
    monkeypatch.setenv("STOREFRONT_DATA_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("STOREFRONT_LOG_LEVEL", "DEBUG")

    settings = load_settings(path)
    assert settings.api.base_url == "http://from-env/api"
    assert settings.storage.data_dir == str(tmp_path / "state")
    assert settings.logging.level == "DEBUG"


def test_unreadable_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "storefront.yaml"
    path.write_text("api: [unclosed\n", encoding="utf-8")
    assert load_settings(path) == Settings()


def test_non_mapping_file_is_an_error(tmp_path):
    path = tmp_path / "storefront.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)


@pytest.mark.parametrize(
    "content",
    [
        "storage:\n  backend: redis\n",
        "auth:\n  otp_max_attempts: 0\n",
        "api:\n  max_retries: nope\n",
    ],
)
def test_invalid_values_raise_config_error(tmp_path, content):
    path = tmp_path / "storefront.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_unbounded_otp_attempts(tmp_path):
    path = tmp_path / "storefront.yaml"
    path.write_text("auth:\n  otp_max_attempts: null\n", encoding="utf-8")
    assert load_settings(path).auth.otp_max_attempts is None
