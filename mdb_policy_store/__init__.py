"""
MDB Policy Store - MongoDB persistence for Casbin policies

Async Casbin adapter storing policy and grouping rules in a MongoDB
collection, with batch, filtered-load and in-place update support.
"""

from .adapter import MongoAdapter
from .casbin_models import DEFAULT_RBAC_MODEL, SIMPLE_ACL_MODEL
from .config import AdapterConfig
from .enforcer import create_enforcer, create_mongo_enforcer, get_casbin_model
from .exceptions import AdapterOperationError, ConfigurationError, PolicyStoreError

__version__ = "0.1.0"

__all__ = [
    # Adapter
    "MongoAdapter",
    "AdapterConfig",
    # Enforcer
    "create_enforcer",
    "create_mongo_enforcer",
    "get_casbin_model",
    "DEFAULT_RBAC_MODEL",
    "SIMPLE_ACL_MODEL",
    # Errors
    "PolicyStoreError",
    "ConfigurationError",
    "AdapterOperationError",
]
