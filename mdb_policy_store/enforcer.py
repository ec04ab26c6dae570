"""
Casbin enforcer factory.

Builds a casbin.AsyncEnforcer bound to a MongoAdapter from a bundled model
name or a model file.

This module is part of MDB Policy Store.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import aiofiles
import casbin

from .adapter import MongoAdapter
from .casbin_models import BUNDLED_MODELS, DEFAULT_RBAC_MODEL
from .constants import DEFAULT_COLLECTION_NAME

logger = logging.getLogger(__name__)


async def get_casbin_model(model_type: str = "rbac") -> str:
    """
    Get Casbin model text by bundled name or file path.

    Args:
        model_type: "rbac", "acl" or a path to a model .conf file

    Returns:
        Casbin model text. An unknown name that is not an existing file
        falls back to the RBAC model.
    """
    if model_type in BUNDLED_MODELS:
        return BUNDLED_MODELS[model_type]

    model_path = Path(model_type)
    if not model_path.is_file():
        logger.warning(f"Casbin model file not found: {model_type}, using default RBAC model")
        return DEFAULT_RBAC_MODEL

    async with aiofiles.open(model_path) as f:
        content = await f.read()
    logger.debug(f"Read model file: {model_path}")
    return content


async def create_enforcer(
    adapter: MongoAdapter,
    model: str = "rbac",
    auto_load: bool = True,
) -> casbin.AsyncEnforcer:
    """
    Create a Casbin AsyncEnforcer backed by the given adapter.

    Args:
        adapter: An opened MongoAdapter
        model: "rbac", "acl" or a path to a model file
        auto_load: Load the stored policy before returning

    Returns:
        Configured AsyncEnforcer
    """
    model_text = await get_casbin_model(model)

    casbin_model = casbin.Model()
    casbin_model.load_model_from_text(model_text)

    enforcer = casbin.AsyncEnforcer(casbin_model, adapter)
    if auto_load:
        await enforcer.load_policy()

    logger.info(
        f"Casbin enforcer created with model '{model}' and "
        f"policies collection '{adapter.collection_name}'"
    )
    return enforcer


async def create_mongo_enforcer(
    mongo_uri: str,
    db_name: str,
    model: str = "rbac",
    policies_collection: str = DEFAULT_COLLECTION_NAME,
    **adapter_options: Any,
) -> casbin.AsyncEnforcer:
    """
    Open a MongoAdapter and create an enforcer on top of it.

    Args:
        mongo_uri: MongoDB connection URI
        db_name: MongoDB database name
        model: "rbac", "acl" or a path to a model file
        policies_collection: Collection holding the rules
        **adapter_options: Extra MongoAdapter arguments (filtered, options,
            drop_collection_on_manual_save)

    Returns:
        Configured AsyncEnforcer. Close it with ``await enforcer.adapter.close()``.
    """
    adapter = await MongoAdapter.new_adapter(
        uri=mongo_uri,
        database=db_name,
        collection=policies_collection,
        **adapter_options,
    )
    return await create_enforcer(adapter, model=model)
