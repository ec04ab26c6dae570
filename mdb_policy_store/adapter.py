"""
MongoDB policy adapter for Casbin.

MongoAdapter stores Casbin rules in a single MongoDB collection, one
document per rule, and implements Casbin's async adapter contracts:

- AsyncAdapter: load/save the whole policy, add/remove single rules
- AsyncBatchAdapter: add/remove many rules at once
- AsyncFilteredAdapter: load only the rules matching a MongoDB filter
- AsyncUpdateAdapter: update rules in place

Usage:
    adapter = await MongoAdapter.new_adapter(
        uri="mongodb://localhost:27017",
        database="casbin",
        collection="casbin_rule",
    )
    enforcer = casbin.AsyncEnforcer(model, adapter)
    await enforcer.load_policy()

This module is part of MDB Policy Store.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from casbin import persist
from casbin.persist.adapters.asyncio import (
    AsyncAdapter,
    AsyncBatchAdapter,
    AsyncFilteredAdapter,
    AsyncUpdateAdapter,
)
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import PyMongoError

from .constants import DEFAULT_COLLECTION_NAME, DEFAULT_DB_NAME, POLICY_KEYS
from .documents import (
    RuleDocument,
    document_to_line,
    document_to_rule,
    iter_model_rules,
    partial_match_filter,
    rule_to_document,
    update_operation,
    utc_now,
)
from .exceptions import AdapterOperationError, ConfigurationError
from .indexes import ensure_collection, ensure_policy_indexes
from .observability import get_logger as get_contextual_logger
from .observability import timed_operation

if TYPE_CHECKING:
    from casbin.model import Model

    from .config import AdapterConfig

logger = logging.getLogger(__name__)

# Failures raised by the driver, plus the programming errors a malformed
# document or argument surfaces as.
STORE_ERRORS = (PyMongoError, TypeError, ValueError, AttributeError, KeyError)


class MongoAdapter(AsyncFilteredAdapter, AsyncBatchAdapter, AsyncUpdateAdapter, AsyncAdapter):
    """
    Casbin adapter persisting rules in a MongoDB collection.

    The client is created at construction, without network I/O; open()
    connects and bootstraps the collection's indexes. Every driver failure
    is re-raised as AdapterOperationError with the original error chained.
    """

    def __init__(
        self,
        uri: str,
        database: str = DEFAULT_DB_NAME,
        collection: str = DEFAULT_COLLECTION_NAME,
        filtered: bool = False,
        options: dict[str, Any] | None = None,
        drop_collection_on_manual_save: bool = False,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            uri: MongoDB connection URI (required)
            database: Database holding the policy collection
            collection: Policy collection name
            filtered: Apply the filter passed to load_filtered_policy; when
                False every load reads the whole collection
            options: Keyword options passed unmodified to AsyncIOMotorClient
            drop_collection_on_manual_save: Drop and recreate the collection
                on save_policy instead of deleting its documents

        Raises:
            ConfigurationError: If uri is empty
            AdapterOperationError: If the client cannot be created
        """
        if not uri:
            raise ConfigurationError(
                "MongoDB URI is required. Please provide a valid connection string.",
                config_key="uri",
            )

        self.database_name = database
        self.collection_name = collection
        self.use_filter = filtered
        self.drop_collection_on_manual_save = drop_collection_on_manual_save
        self._filtered = False
        self._logger = get_contextual_logger(
            __name__, db_name=database, collection_name=collection
        )

        try:
            self._client: AsyncIOMotorClient | None = AsyncIOMotorClient(uri, **(options or {}))
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to create MongoClient",
                e,
                operation="create_client",
                context={"db_name": database},
            ) from e

    @classmethod
    async def new_adapter(
        cls,
        uri: str,
        database: str = DEFAULT_DB_NAME,
        collection: str = DEFAULT_COLLECTION_NAME,
        filtered: bool = False,
        options: dict[str, Any] | None = None,
        drop_collection_on_manual_save: bool = False,
    ) -> "MongoAdapter":
        """Create an adapter and open it."""
        adapter = cls(
            uri,
            database,
            collection,
            filtered=filtered,
            options=options,
            drop_collection_on_manual_save=drop_collection_on_manual_save,
        )
        try:
            await adapter.open()
        except AdapterOperationError:
            adapter._release_client()
            raise
        return adapter

    @classmethod
    async def from_config(cls, config: "AdapterConfig") -> "MongoAdapter":
        """Create and open an adapter from an AdapterConfig."""
        return await cls.new_adapter(
            uri=config.mongo_uri,
            database=config.db_name,
            collection=config.collection_name,
            filtered=config.filtered,
            options=config.client_kwargs(),
            drop_collection_on_manual_save=config.drop_collection_on_manual_save,
        )

    async def __aenter__(self) -> "MongoAdapter":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            await self.close()

    def metric_tags(self) -> dict[str, str]:
        """Tags attached to every metric this adapter records."""
        return {"collection": self.collection_name}

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @timed_operation("policy_store.open")
    async def open(self) -> "MongoAdapter":
        """
        Connect to MongoDB and bootstrap the collection's indexes.

        Index bootstrap is best-effort here: a failure is logged and the
        adapter stays usable. Call create_db_index() to retry it with
        errors surfaced.

        Raises:
            AdapterOperationError: If the server cannot be reached
        """
        if self._client is None:
            raise AdapterOperationError(
                "Failed to open MongoDB connection: the client has been closed",
                operation="open",
            )

        try:
            await self._client.admin.command("ping")
        except STORE_ERRORS as e:
            self._logger.error(
                "MongoDB connection failed",
                extra={"error_type": type(e).__name__, "error": str(e)},
            )
            raise AdapterOperationError.wrap(
                "Failed to open MongoDB connection",
                e,
                operation="open",
                context={"db_name": self.database_name},
            ) from e

        try:
            await self.create_db_index()
        except AdapterOperationError:
            self._logger.warning(
                "Index creation failed while opening the adapter; "
                "continuing without guaranteed indexes",
                exc_info=True,
            )

        self._logger.info("MongoDB policy adapter opened")
        return self

    @timed_operation("policy_store.create_db_index")
    async def create_db_index(self) -> list[str]:
        """
        Ensure the collection and its three policy indexes exist.

        Returns:
            Names of the indexes created by this call

        Raises:
            AdapterOperationError: If the collection or an index cannot be created
        """
        try:
            await ensure_collection(self._get_database(), self.collection_name)
            return await ensure_policy_indexes(self._get_collection())
        except (AdapterOperationError, *STORE_ERRORS) as e:
            raise AdapterOperationError.wrap(
                "Failed to create collection or database indexes",
                e,
                operation="create_db_index",
            ) from e

    async def close(self) -> None:
        """
        Close the MongoDB client.

        Raises:
            AdapterOperationError: If no connection is open or closing fails
        """
        if self._client is None:
            raise AdapterOperationError(
                "Failed to close MongoDB connection: no active connection. "
                "Please ensure the client is connected before closing.",
                operation="close",
            )

        try:
            self._client.close()
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to close MongoDB connection", e, operation="close"
            ) from e
        finally:
            self._client = None

        self._logger.info("MongoDB policy adapter closed")

    def _release_client(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get_database(self) -> AsyncIOMotorDatabase:
        if self._client is None:
            raise AdapterOperationError(
                f"Failed to get database '{self.database_name}': no active connection",
                operation="get_database",
            )
        try:
            return self._client[self.database_name]
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                f"Failed to get database '{self.database_name}'", e, operation="get_database"
            ) from e

    def _get_collection(self) -> AsyncIOMotorCollection:
        database = self._get_database()
        try:
            return database[self.collection_name]
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                f"Failed to get collection '{self.collection_name}'",
                e,
                operation="get_collection",
            ) from e

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def is_filtered(self) -> bool:
        """Whether the last load applied a filter (Casbin refuses to save then)."""
        return self._filtered

    @timed_operation("policy_store.load_policy")
    async def load_policy(self, model: "Model") -> None:
        """Load every rule in the collection into the model."""
        try:
            count = await self._load_lines(model, {})
        except (AdapterOperationError, *STORE_ERRORS) as e:
            raise AdapterOperationError.wrap(
                "Failed to load policy", e, operation="load_policy"
            ) from e
        self._filtered = False
        logger.debug(f"Loaded {count} policy rule(s) from '{self.collection_name}'")

    @timed_operation("policy_store.load_filtered_policy")
    async def load_filtered_policy(
        self, model: "Model", filter: dict[str, Any] | None = None
    ) -> None:
        """
        Load the rules matching a MongoDB filter into the model.

        The filter is applied only when the adapter was created with
        filtered=True; otherwise the whole collection is loaded.

        Args:
            model: Casbin model to load into
            filter: MongoDB query document, e.g. {"ptype": "p", "v0": "alice"}
        """
        apply_filter = self.use_filter and filter is not None
        try:
            count = await self._load_lines(model, filter if apply_filter else {})
        except (AdapterOperationError, *STORE_ERRORS) as e:
            raise AdapterOperationError.wrap(
                "Failed to load filtered policy", e, operation="load_filtered_policy"
            ) from e
        self._filtered = apply_filter
        logger.debug(
            f"Loaded {count} policy rule(s) from '{self.collection_name}' "
            f"(filter applied: {apply_filter})"
        )

    async def _load_lines(self, model: "Model", query: dict[str, Any]) -> int:
        documents = await self._get_collection().find(query).to_list(None)
        for doc in documents:
            persist.load_policy_line(document_to_line(doc), model)
        return len(documents)

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    @timed_operation("policy_store.save_policy")
    async def save_policy(self, model: "Model") -> bool:
        """
        Replace the stored policy with the model's current rules.

        Clears the collection, then inserts all policy ("p") rules followed by
        all grouping ("g") rules. Not atomic: a failure between the two steps
        leaves the collection empty.
        """
        await self._clear_collection()

        now = utc_now()
        documents = [
            rule_to_document(ptype, rule, "both", now=now)
            for key in POLICY_KEYS
            for ptype, rule in iter_model_rules(model, key)
        ]
        if not documents:
            return True

        try:
            await self._get_collection().insert_many(documents)
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to save policy", e, operation="save_policy"
            ) from e

        logger.debug(f"Saved {len(documents)} policy rule(s) to '{self.collection_name}'")
        return True

    async def _clear_collection(self) -> None:
        try:
            database = self._get_database()
            existing = await database.list_collection_names(filter={"name": self.collection_name})
            if not existing:
                return

            collection = database[self.collection_name]
            if self.drop_collection_on_manual_save:
                await collection.drop()
                self._logger.info("Policy collection dropped for save")
            else:
                await collection.delete_many({})
        except (AdapterOperationError, *STORE_ERRORS) as e:
            raise AdapterOperationError.wrap(
                f"Failed to clear collection '{self.collection_name}'",
                e,
                operation="clear_collection",
            ) from e

        if self.drop_collection_on_manual_save:
            try:
                await self.create_db_index()
            except AdapterOperationError:
                self._logger.warning(
                    "Index creation failed after dropping the policy collection",
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Single-rule operations
    # ------------------------------------------------------------------

    @timed_operation("policy_store.add_policy")
    async def add_policy(self, sec: str, ptype: str, rule: Sequence[str]) -> bool:
        """Insert one rule, stamped with createdAt and updatedAt."""
        try:
            await self._get_collection().insert_one(rule_to_document(ptype, rule, "both"))
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to add policy", e, operation="add_policy"
            ) from e
        return True

    @timed_operation("policy_store.remove_policy")
    async def remove_policy(self, sec: str, ptype: str, rule: Sequence[str]) -> bool:
        """Delete the rule whose ptype and fields match exactly. No-op if absent."""
        try:
            await self._get_collection().delete_one(rule_to_document(ptype, rule))
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to remove policy", e, operation="remove_policy"
            ) from e
        return True

    @timed_operation("policy_store.remove_filtered_policy")
    async def remove_filtered_policy(
        self, sec: str, ptype: str, field_index: int, *field_values: str
    ) -> bool:
        """
        Delete every rule whose fields starting at field_index match field_values.

        Fields outside [field_index, field_index + len(field_values)) are
        unconstrained.
        """
        query = partial_match_filter(ptype, field_index, field_values)
        try:
            result = await self._get_collection().delete_many(query)
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to remove filtered policy", e, operation="remove_filtered_policy"
            ) from e
        logger.debug(f"Removed {result.deleted_count} rule(s) matching {query}")
        return True

    @timed_operation("policy_store.update_policy")
    async def update_policy(
        self, sec: str, ptype: str, old_rule: Sequence[str], new_rule: Sequence[str]
    ) -> bool:
        """
        Replace old_rule with new_rule in place.

        createdAt is preserved, updatedAt is refreshed and positional fields
        the new rule no longer has are removed from the document.
        """
        try:
            await self._update_one(self._get_collection(), ptype, old_rule, new_rule)
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to update policy", e, operation="update_policy"
            ) from e
        return True

    @staticmethod
    async def _update_one(
        collection: AsyncIOMotorCollection,
        ptype: str,
        old_rule: Sequence[str],
        new_rule: Sequence[str],
    ) -> Any:
        old_key = rule_to_document(ptype, old_rule)
        new_fields = rule_to_document(ptype, new_rule, "updated")
        return await collection.update_one(old_key, update_operation(old_key, new_fields))

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    @timed_operation("policy_store.add_policies")
    async def add_policies(self, sec: str, ptype: str, rules: Sequence[Sequence[str]]) -> bool:
        """
        Insert many rules, each independently timestamped.

        Not atomic as a batch: rules inserted before a failure stay inserted.
        """
        if not rules:
            return True

        documents = [rule_to_document(ptype, rule, "both") for rule in rules]
        try:
            await self._get_collection().insert_many(documents)
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to add policies", e, operation="add_policies"
            ) from e
        return True

    @timed_operation("policy_store.remove_policies")
    async def remove_policies(
        self, sec: str, ptype: str, rules: Sequence[Sequence[str]]
    ) -> bool:
        """
        Delete many rules, one exact-match delete per rule.

        The deletes run concurrently with no ordering between them. The call
        returns once all of them have settled and fails if any one failed.
        """
        try:
            keys = [rule_to_document(ptype, rule) for rule in rules]
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to remove policies", e, operation="remove_policies"
            ) from e

        collection = self._get_collection()
        results = await asyncio.gather(
            *(collection.delete_one(key) for key in keys),
            return_exceptions=True,
        )
        self._raise_first_failure(results, "Failed to remove policies", "remove_policies")
        return True

    @timed_operation("policy_store.update_policies")
    async def update_policies(
        self,
        sec: str,
        ptype: str,
        old_rules: Sequence[Sequence[str]],
        new_rules: Sequence[Sequence[str]],
    ) -> bool:
        """
        Update many rules in place, pairing old_rules[i] with new_rules[i].

        Like remove_policies, the updates run concurrently and the batch
        fails if any one of them failed.
        """
        if len(old_rules) != len(new_rules):
            raise ValueError(
                f"old_rules and new_rules must have the same length, "
                f"got {len(old_rules)} and {len(new_rules)}"
            )

        collection = self._get_collection()
        results = await asyncio.gather(
            *(
                self._update_one(collection, ptype, old_rule, new_rule)
                for old_rule, new_rule in zip(old_rules, new_rules)
            ),
            return_exceptions=True,
        )
        self._raise_first_failure(results, "Failed to update policies", "update_policies")
        return True

    @timed_operation("policy_store.update_filtered_policies")
    async def update_filtered_policies(
        self,
        sec: str,
        ptype: str,
        new_rules: Sequence[Sequence[str]],
        field_index: int,
        *field_values: str,
    ) -> list[list[str]]:
        """
        Replace every rule matching the partial key with new_rules.

        Matching uses the same window semantics as remove_filtered_policy.

        Returns:
            The rules that were replaced
        """
        query = partial_match_filter(ptype, field_index, field_values)
        try:
            collection = self._get_collection()
            old_documents: list[RuleDocument] = await collection.find(query).to_list(None)
            if old_documents:
                await collection.delete_many({"_id": {"$in": [d["_id"] for d in old_documents]}})
            if new_rules:
                await collection.insert_many(
                    [rule_to_document(ptype, rule, "both") for rule in new_rules]
                )
        except STORE_ERRORS as e:
            raise AdapterOperationError.wrap(
                "Failed to update filtered policies", e, operation="update_filtered_policies"
            ) from e

        return [document_to_rule(doc) for doc in old_documents]

    @staticmethod
    def _raise_first_failure(results: list[Any], prefix: str, operation: str) -> None:
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return
        first = failures[0]
        if not isinstance(first, STORE_ERRORS):
            raise first
        raise AdapterOperationError.wrap(
            prefix,
            first,
            operation=operation,
            context={"failed": len(failures), "total": len(results)},
        ) from first
