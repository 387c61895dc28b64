"""Tests for local storage and configuration."""

import json
import os

import pytest

from mums_server.config import StorageKeys, StoreConfig
from mums_server.storage import LocalStorage


def test_values_survive_reopen(tmp_path):
    path = str(tmp_path / "s.json")
    LocalStorage(path).set("mums_cart", [{"productId": "MUM1"}])
    assert LocalStorage(path).get("mums_cart") == [{"productId": "MUM1"}]


def test_file_is_private(tmp_path):
    path = str(tmp_path / "s.json")
    LocalStorage(path).set("k", 1)
    assert os.stat(path).st_mode & 0o777 == 0o600


def test_remove(tmp_path):
    storage = LocalStorage(str(tmp_path / "s.json"))
    storage.set("k", 1)
    storage.remove("k")
    storage.remove("missing")
    assert "k" not in storage


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "s.json"
    path.write_text("{not json")
    assert LocalStorage(str(path)).get("mums_cart") is None


def test_non_object_file_starts_empty(tmp_path):
    path = tmp_path / "s.json"
    path.write_text(json.dumps([1, 2]))
    assert LocalStorage(str(path)).get("anything", "fallback") == "fallback"


def test_test_mode_keys():
    assert StorageKeys.for_mode(False).cart == "mums_cart"
    keys = StorageKeys.for_mode(True)
    assert keys.cart == "mums_test_cart"
    assert keys.customer_info == "mums_test_customer_info"
    assert keys.last_order == "mums_test_last_order"


def test_config_from_env(tmp_path):
    config = StoreConfig.from_env(
        {
            "MUMS_API_URL": "https://example.test/exec",
            "MUMS_STORAGE_FILE": str(tmp_path / "x.json"),
            "MUMS_MAX_RETRIES": "5",
            "MUMS_RETRY_DELAY": "0.5",
            "MUMS_TEST_MODE": "true",
            "MUMS_COLOR_VARIANTS": '{"BIG": ["Bronze"]}',
        }
    )
    assert config.api_url == "https://example.test/exec"
    assert config.max_retries == 5
    assert config.retry_delay == 0.5
    assert config.test_mode is True
    assert config.storage_keys.cart == "mums_test_cart"
    assert config.color_variants == {"BIG": ["Bronze"]}


def test_config_defaults():
    config = StoreConfig.from_env({})
    assert config.cache_duration == 300
    assert config.max_retries == 3
    assert config.retry_delay == 1.0
    assert config.auto_save_interval == 5.0
    assert config.test_mode is False
    assert config.color_variants["APPLE"] == ["Yellow", "Orange", "Red"]


@pytest.mark.parametrize(
    "env",
    [
        {"MUMS_MAX_RETRIES": "many"},
        {"MUMS_CACHE_DURATION": "soon"},
        {"MUMS_COLOR_VARIANTS": "[1, 2]"},
        {"MUMS_COLOR_VARIANTS": "{oops"},
        {"MUMS_MAX_RETRIES": "-1"},
    ],
)
def test_config_rejects_bad_values(env):
    with pytest.raises(ValueError):
        StoreConfig.from_env(env)
