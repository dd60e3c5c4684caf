"""
Summaries of the ``requirements`` hash Stripe attaches to connected accounts.

The dashboard uses these flags to tell the photographer what Stripe still
needs before charges and payouts can be enabled.
"""

from __future__ import annotations

from typing import Any, Mapping

IDENTITY_FIELDS = (
    "individual.id_number",
    "individual.ssn_last_4",
    "individual.verification.document",
)


def _all_due(requirements: Mapping[str, Any] | None) -> list[str]:
    if not requirements:
        return []
    fields: list[str] = []
    for key in ("past_due", "currently_due", "eventually_due"):
        fields.extend(requirements.get(key) or [])
    return fields


def needs_identity(requirements: Mapping[str, Any] | None) -> bool:
    return any(
        identity in field
        for field in _all_due(requirements)
        for identity in IDENTITY_FIELDS
    )


def needs_bank_account(requirements: Mapping[str, Any] | None) -> bool:
    return any("external_account" in field for field in _all_due(requirements))


def is_restricted(requirements: Mapping[str, Any] | None) -> bool:
    if not requirements:
        return False
    return bool(requirements.get("past_due"))


def has_currently_due(requirements: Mapping[str, Any] | None) -> bool:
    if not requirements:
        return False
    return bool(requirements.get("currently_due"))


def summarize_requirements(requirements: Mapping[str, Any] | None) -> dict[str, Any]:
    return {
        "needs_identity": needs_identity(requirements),
        "needs_bank_account": needs_bank_account(requirements),
        "is_restricted": is_restricted(requirements),
        "has_currently_due": has_currently_due(requirements),
        "current_deadline": (requirements or {}).get("current_deadline"),
    }
