"""
Constants for MDB Policy Store.

Field names, index names and defaults shared across the package.
"""

from typing import Final

# ============================================================================
# RULE DOCUMENT CONSTANTS
# ============================================================================

PTYPE_FIELD: Final[str] = "ptype"
"""Document field holding the rule-type discriminator ("p", "g", "p2", ...)."""

MAX_RULE_FIELDS: Final[int] = 6
"""Number of positional fields (v0..v5) a rule document can carry."""

RULE_FIELDS: Final[tuple[str, ...]] = tuple(f"v{i}" for i in range(MAX_RULE_FIELDS))
"""Positional field names, in order."""

CREATED_AT_FIELD: Final[str] = "createdAt"
"""Set once when the rule is inserted."""

UPDATED_AT_FIELD: Final[str] = "updatedAt"
"""Set on insertion and refreshed by every update."""

TIMESTAMP_FIELDS: Final[tuple[str, ...]] = (CREATED_AT_FIELD, UPDATED_AT_FIELD)

POLICY_KEYS: Final[tuple[str, ...]] = ("p", "g")
"""Model sections persisted by save_policy, in save order."""

# ============================================================================
# INDEX CONSTANTS
# ============================================================================

COMPOUND_INDEX_NAME: Final[str] = "ptype_v0_v1_v2_v3_v4_v5_compound_index"
"""Name of the compound (ptype, v0..v5) lookup index."""

COMPOUND_INDEX_KEYS: Final[list[tuple[str, int]]] = [
    (PTYPE_FIELD, 1),
    *((field, 1) for field in RULE_FIELDS),
]

# ============================================================================
# CONNECTION DEFAULTS
# ============================================================================

DEFAULT_DB_NAME: Final[str] = "casbin"
"""Default database name."""

DEFAULT_COLLECTION_NAME: Final[str] = "casbin_rule"
"""Default policy collection name."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

MIN_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 1000
"""Lowest accepted server selection timeout in milliseconds."""

DEFAULT_APP_NAME: Final[str] = "MDB_POLICY_STORE"
"""appname reported to the MongoDB server."""
