"""
Configuration management for MDB Policy Store.

AdapterConfig collects the adapter's construction parameters and can be
filled from environment variables. It is optional: MongoAdapter can still be
built with direct parameters.

Example:
    # Using environment variables
    config = AdapterConfig.from_env()
    adapter = await MongoAdapter.from_config(config)

    # Or using direct parameters
    adapter = await MongoAdapter.new_adapter(
        uri="mongodb://localhost:27017",
        database="casbin",
        collection="casbin_rule",
    )
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_APP_NAME,
    DEFAULT_COLLECTION_NAME,
    DEFAULT_DB_NAME,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    MIN_SERVER_SELECTION_TIMEOUT_MS,
)
from .exceptions import ConfigurationError

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


class AdapterConfig(BaseModel):
    """
    MongoDB policy adapter configuration.

    Attributes:
        mongo_uri: MongoDB connection URI (required, non-empty)
        db_name: Database holding the policy collection
        collection_name: Policy collection name
        filtered: Whether load_filtered_policy applies its filter
        drop_collection_on_manual_save: Drop the collection on save_policy
            instead of deleting its documents
        server_selection_timeout_ms: Server selection timeout in ms
        client_options: Extra keyword options for AsyncIOMotorClient
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mongo_uri: str = Field(..., description="MongoDB connection URI")
    db_name: str = Field(DEFAULT_DB_NAME, min_length=1)
    collection_name: str = Field(DEFAULT_COLLECTION_NAME, min_length=1)
    filtered: bool = False
    drop_collection_on_manual_save: bool = False
    server_selection_timeout_ms: int = Field(
        DEFAULT_SERVER_SELECTION_TIMEOUT_MS, ge=MIN_SERVER_SELECTION_TIMEOUT_MS
    )
    client_options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("mongo_uri")
    @classmethod
    def _require_uri(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("MongoDB URI is required. Please provide a valid connection string.")
        return value

    @classmethod
    def load(cls, **values: Any) -> "AdapterConfig":
        """
        Validate values into a config, raising ConfigurationError on failure.
        """
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            config_key = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid adapter configuration: {first.get('msg')}",
                config_key=config_key,
            ) from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "AdapterConfig":
        """
        Build a config from environment variables.

        Recognized variables: CASBIN_MONGO_URI (or MONGO_URI),
        CASBIN_DB_NAME (or DB_NAME), CASBIN_COLLECTION, CASBIN_FILTERED,
        CASBIN_DROP_ON_SAVE, MONGO_SERVER_SELECTION_TIMEOUT_MS.
        Keyword overrides win over the environment.
        """
        values: dict[str, Any] = {
            "mongo_uri": os.getenv("CASBIN_MONGO_URI") or os.getenv("MONGO_URI", ""),
            "db_name": os.getenv("CASBIN_DB_NAME") or os.getenv("DB_NAME") or DEFAULT_DB_NAME,
            "collection_name": os.getenv("CASBIN_COLLECTION", DEFAULT_COLLECTION_NAME),
            "filtered": _env_flag("CASBIN_FILTERED"),
            "drop_collection_on_manual_save": _env_flag("CASBIN_DROP_ON_SAVE"),
            "server_selection_timeout_ms": os.getenv(
                "MONGO_SERVER_SELECTION_TIMEOUT_MS", str(DEFAULT_SERVER_SELECTION_TIMEOUT_MS)
            ),
        }
        values.update(overrides)
        return cls.load(**values)

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword options passed through to AsyncIOMotorClient."""
        return {
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "appname": DEFAULT_APP_NAME,
            **self.client_options,
        }
