"""
Rule document mapping.

Translates between Casbin rules (a ptype plus an ordered list of string
fields) and the documents stored in the policy collection::

    {"ptype": "p", "v0": "alice", "v1": "data1", "v2": "read",
     "createdAt": <datetime>, "updatedAt": <datetime>}

Positional fields beyond the rule's length are omitted, never stored as
empty strings.
"""

from collections.abc import Iterator, Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from .constants import (
    CREATED_AT_FIELD,
    MAX_RULE_FIELDS,
    PTYPE_FIELD,
    RULE_FIELDS,
    TIMESTAMP_FIELDS,
    UPDATED_AT_FIELD,
)

if TYPE_CHECKING:
    from casbin.model import Model

TimestampOption = Literal["none", "updated", "both"]

RuleDocument = dict[str, Any]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def rule_to_document(
    ptype: str,
    rule: Sequence[str],
    timestamps: TimestampOption = "none",
    now: datetime | None = None,
) -> RuleDocument:
    """
    Build a rule document from a ptype and its ordered fields.

    Args:
        ptype: Rule-type discriminator ("p", "g", "p2", ...)
        rule: Ordered rule fields; anything past v5 is ignored
        timestamps: "none" for match keys, "updated" for update payloads,
            "both" for new insertions
        now: Timestamp to stamp with (defaults to the current UTC time)

    Returns:
        Document dict
    """
    doc: RuleDocument = {PTYPE_FIELD: ptype}
    for field, value in zip(RULE_FIELDS, rule[:MAX_RULE_FIELDS]):
        doc[field] = value

    if timestamps == "none":
        return doc

    now = now or utc_now()
    if timestamps == "both":
        doc[CREATED_AT_FIELD] = now
    doc[UPDATED_AT_FIELD] = now
    return doc


def document_to_rule(doc: RuleDocument) -> list[str]:
    """Extract the ordered rule fields from a stored document."""
    values = [doc.get(field) for field in RULE_FIELDS]
    rule = [value for value in values if value is not None]
    while rule and rule[-1] == "":
        rule.pop()
    return rule


def document_to_line(doc: RuleDocument) -> str:
    """
    Render a stored document as a Casbin policy line ("p, alice, data1, read").

    Trailing absent or empty fields are omitted.
    """
    return ", ".join([doc[PTYPE_FIELD], *document_to_rule(doc)])


def partial_match_filter(
    ptype: str, field_index: int, field_values: Sequence[str]
) -> RuleDocument:
    """
    Build the filter used by filtered removal.

    Constrains ptype plus v[field_index]..v[field_index + len - 1] to the
    given values. Positional fields outside that window are unconstrained,
    so a rule matches regardless of what it stores there.
    """
    doc: RuleDocument = {PTYPE_FIELD: ptype}
    for i in range(MAX_RULE_FIELDS):
        if field_index <= i < field_index + len(field_values):
            doc[RULE_FIELDS[i]] = field_values[i - field_index]
    return doc


def update_operation(old_key: RuleDocument, new_fields: RuleDocument) -> dict[str, Any]:
    """
    Build the update document that turns the rule at old_key into new_fields.

    Sets every field in new_fields and unsets each field of the old key
    that the new rule no longer carries. Timestamps are never unset.
    """
    unset = {
        key: ""
        for key in old_key
        if key not in new_fields and key not in TIMESTAMP_FIELDS
    }
    update: dict[str, Any] = {"$set": new_fields}
    if unset:
        update["$unset"] = unset
    return update


def iter_model_rules(model: "Model", key: str) -> Iterator[tuple[str, list[str]]]:
    """
    Read-only view of the rules a Casbin model currently holds.

    Yields (ptype, rule) for every rule of every rule type declared under
    key ("p" or "g"), in declaration order.
    """
    assertions = model.model.get(key) or {}
    for ptype, assertion in assertions.items():
        for rule in assertion.policy:
            yield ptype, rule
