"""
Unit tests for AdapterConfig.

Tests validation, environment loading and client option assembly.
"""

import pytest

from mdb_policy_store.config import AdapterConfig
from mdb_policy_store.exceptions import ConfigurationError

ENV_VARS = (
    "CASBIN_MONGO_URI",
    "MONGO_URI",
    "CASBIN_DB_NAME",
    "DB_NAME",
    "CASBIN_COLLECTION",
    "CASBIN_FILTERED",
    "CASBIN_DROP_ON_SAVE",
    "MONGO_SERVER_SELECTION_TIMEOUT_MS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestAdapterConfigValidation:
    """Test direct construction."""

    def test_defaults(self):
        config = AdapterConfig.load(mongo_uri="mongodb://localhost:27017")
        assert config.db_name == "casbin"
        assert config.collection_name == "casbin_rule"
        assert config.filtered is False
        assert config.drop_collection_on_manual_save is False
        assert config.server_selection_timeout_ms == 5000

    @pytest.mark.parametrize("uri", ["", "   "])
    def test_empty_uri_is_rejected(self, uri):
        with pytest.raises(ConfigurationError) as exc_info:
            AdapterConfig.load(mongo_uri=uri)
        assert exc_info.value.config_key == "mongo_uri"
        assert "MongoDB URI is required" in str(exc_info.value)

    def test_timeout_lower_bound(self):
        with pytest.raises(ConfigurationError) as exc_info:
            AdapterConfig.load(mongo_uri="mongodb://h", server_selection_timeout_ms=10)
        assert exc_info.value.config_key == "server_selection_timeout_ms"

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ConfigurationError):
            AdapterConfig.load(mongo_uri="mongodb://h", colection_name="typo")

    def test_client_kwargs_merges_client_options(self):
        config = AdapterConfig.load(
            mongo_uri="mongodb://h",
            server_selection_timeout_ms=2000,
            client_options={"maxPoolSize": 5, "appname": "billing"},
        )
        assert config.client_kwargs() == {
            "serverSelectionTimeoutMS": 2000,
            "appname": "billing",
            "maxPoolSize": 5,
        }


class TestAdapterConfigFromEnv:
    """Test environment variable loading."""

    def test_reads_casbin_variables(self, clean_env):
        clean_env.setenv("CASBIN_MONGO_URI", "mongodb://policy-db:27017")
        clean_env.setenv("CASBIN_DB_NAME", "authz")
        clean_env.setenv("CASBIN_COLLECTION", "rules")
        clean_env.setenv("CASBIN_FILTERED", "true")
        clean_env.setenv("CASBIN_DROP_ON_SAVE", "1")
        clean_env.setenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "3000")

        config = AdapterConfig.from_env()

        assert config.mongo_uri == "mongodb://policy-db:27017"
        assert config.db_name == "authz"
        assert config.collection_name == "rules"
        assert config.filtered is True
        assert config.drop_collection_on_manual_save is True
        assert config.server_selection_timeout_ms == 3000

    def test_falls_back_to_generic_variables(self, clean_env):
        clean_env.setenv("MONGO_URI", "mongodb://shared:27017")
        clean_env.setenv("DB_NAME", "app")

        config = AdapterConfig.from_env()

        assert config.mongo_uri == "mongodb://shared:27017"
        assert config.db_name == "app"

    def test_overrides_win(self, clean_env):
        clean_env.setenv("CASBIN_MONGO_URI", "mongodb://env:27017")
        config = AdapterConfig.from_env(mongo_uri="mongodb://override:27017")
        assert config.mongo_uri == "mongodb://override:27017"

    def test_missing_uri_raises(self, clean_env):
        with pytest.raises(ConfigurationError):
            AdapterConfig.from_env()
