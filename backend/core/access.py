"""
Actor identity and tenant access rules.

Token payloads arrive with whatever the identity service put in them: role
names, or the legacy numeric role ids. Both are normalized to ``Role`` here
so nothing downstream compares mixed representations.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lifecycle.errors import AccessDenied


class Role(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    OPERATOR = "operator"
    CLIENT = "client"


# Legacy sys_roles ids
_LEGACY_ROLE_IDS = {
    1: Role.ADMIN,
    2: Role.SUPERVISOR,
    3: Role.OPERATOR,
    4: Role.CLIENT,
}

PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.SUPERVISOR, Role.OPERATOR})


def normalize_role(raw: Any) -> Role:
    """Map a role name, numeric id, or numeric string to a Role. Unknown values become CLIENT."""
    if isinstance(raw, Role):
        return raw
    if raw is None:
        return Role.CLIENT
    if isinstance(raw, bool):
        return Role.CLIENT
    if isinstance(raw, int):
        return _LEGACY_ROLE_IDS.get(raw, Role.CLIENT)
    text = str(raw).strip().lower()
    if text.isdigit():
        return _LEGACY_ROLE_IDS.get(int(text), Role.CLIENT)
    try:
        return Role(text)
    except ValueError:
        return Role.CLIENT


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a lifecycle operation."""

    subject: str
    role: Role
    client_id: uuid.UUID | None = None
    email: str | None = None
    name: str | None = None

    @property
    def is_privileged(self) -> bool:
        # Internal staff carry no tenant scope.
        return self.role in PRIVILEGED_ROLES or self.client_id is None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.subject

    @classmethod
    def from_token_payload(cls, payload: dict) -> "Actor":
        role = payload.get("role")
        if role is None:
            role = payload.get("role_id")
        if role is None and payload.get("is_admin"):
            role = Role.ADMIN

        raw_client = payload.get("client_id") or payload.get("customer_id")
        client_id = uuid.UUID(str(raw_client)) if raw_client else None

        return cls(
            subject=str(payload.get("sub") or payload.get("id") or "anonymous"),
            role=normalize_role(role),
            client_id=client_id,
            email=payload.get("email"),
            name=payload.get("name"),
        )


def can_access(actor: Actor, client_id: uuid.UUID | str | None) -> bool:
    if actor.is_privileged:
        return True
    if client_id is None:
        return False
    return str(actor.client_id) == str(client_id)


def ensure_tenant_access(actor: Actor, client_id: uuid.UUID | str | None) -> None:
    """Raise AccessDenied unless the actor may act on the tenant's records."""
    if not can_access(actor, client_id):
        raise AccessDenied(f"Actor {actor.subject} has no access to client {client_id}")
