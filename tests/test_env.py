"""Tests for environment variable expansion."""

import pytest

from workunits.lib.env import expand_config, expand_env_vars


class TestExpandEnvVars:
    def test_braced_and_bare(self, monkeypatch):
        monkeypatch.setenv("WU_DB", "sales")
        assert expand_env_vars("${WU_DB}.orders") == "sales.orders"
        assert expand_env_vars("$WU_DB/orders") == "sales/orders"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("WU_MISSING", raising=False)
        assert expand_env_vars("${WU_MISSING:-fallback}") == "fallback"
        assert expand_env_vars("${WU_MISSING:-}") == ""

    def test_set_value_beats_default(self, monkeypatch):
        monkeypatch.setenv("WU_DB", "sales")
        assert expand_env_vars("${WU_DB:-other}") == "sales"

    def test_missing_left_as_is(self, monkeypatch):
        monkeypatch.delenv("WU_MISSING", raising=False)
        assert expand_env_vars("${WU_MISSING}") == "${WU_MISSING}"

    def test_missing_strict(self, monkeypatch):
        monkeypatch.delenv("WU_MISSING", raising=False)
        with pytest.raises(KeyError):
            expand_env_vars("${WU_MISSING}", strict=True)


class TestExpandConfig:
    def test_nested(self, monkeypatch):
        monkeypatch.setenv("WU_ROOT", "/w")
        config = {
            "catalog": {"path": "${WU_ROOT}/c.yaml", "whitelist": ["$WU_ROOT"]},
            "assembler": {"max_workers": 2},
        }
        assert expand_config(config) == {
            "catalog": {"path": "/w/c.yaml", "whitelist": ["/w"]},
            "assembler": {"max_workers": 2},
        }
