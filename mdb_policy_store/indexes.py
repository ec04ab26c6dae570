"""
Index bootstrap for the policy collection.

Ensures the collection exists and carries the three indexes the adapter
relies on:

- compound (ptype, v0..v5), matched by name
- createdAt ascending, matched by key
- updatedAt ascending, matched by key

Existing indexes are listed once and only the missing ones are created,
so running the bootstrap repeatedly is a no-op.
"""

import logging
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import CollectionInvalid

from .constants import (
    COMPOUND_INDEX_KEYS,
    COMPOUND_INDEX_NAME,
    CREATED_AT_FIELD,
    UPDATED_AT_FIELD,
)

logger = logging.getLogger(__name__)


def keys_to_dict(keys: dict[str, Any] | list[tuple[str, Any]]) -> dict[str, Any]:
    """
    Convert index keys to dictionary format for comparison.

    Args:
        keys: Index keys as dict, SON or list of tuples

    Returns:
        Dictionary representation of keys
    """
    if isinstance(keys, dict):
        return dict(keys)
    return {k: v for k, v in keys}


def has_index_named(existing_indexes: list[dict[str, Any]], name: str) -> bool:
    """Check whether an index with the given name is present."""
    return any(index.get("name") == name for index in existing_indexes)


def has_index_on(existing_indexes: list[dict[str, Any]], field: str) -> bool:
    """Check whether a single-field ascending index on field is present."""
    return any(
        keys_to_dict(index.get("key", {})) == {field: 1} for index in existing_indexes
    )


async def ensure_collection(db: AsyncIOMotorDatabase, collection_name: str) -> bool:
    """
    Create the collection if it does not exist yet.

    Returns:
        True if the collection was created by this call
    """
    existing = await db.list_collection_names(filter={"name": collection_name})
    if existing:
        return False

    try:
        await db.create_collection(collection_name)
    except CollectionInvalid:
        # Created concurrently by another process.
        logger.debug(f"Collection '{collection_name}' already exists")
        return False

    logger.info(f"Collection '{collection_name}' created")
    return True


async def ensure_policy_indexes(collection: AsyncIOMotorCollection) -> list[str]:
    """
    Create any of the three policy indexes that are missing.

    Args:
        collection: The policy collection

    Returns:
        Names of the indexes created by this call (empty when all existed)
    """
    existing_indexes = await collection.list_indexes().to_list(None)
    created: list[str] = []

    if not has_index_named(existing_indexes, COMPOUND_INDEX_NAME):
        created.append(
            await collection.create_index(COMPOUND_INDEX_KEYS, name=COMPOUND_INDEX_NAME)
        )
        logger.info("Compound index created for ptype and v0-v5")

    for field in (CREATED_AT_FIELD, UPDATED_AT_FIELD):
        if not has_index_on(existing_indexes, field):
            created.append(await collection.create_index([(field, 1)]))
            logger.info(f"Index created for {field}")

    return created
