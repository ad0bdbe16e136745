"""
evdms_rules.auth.models

Auth domain models.

Responsibilities:
- Define the closed `Role` enumeration.
- Define the authenticated identity (`Principal`) and the `Session` that owns it.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


class Role(enum.StrEnum):
    # Values are the identity provider's wire names; treat as stable API contract.
    admin = "Admin"
    evm_staff = "EVMStaff"
    evm_manager = "EVMManager"
    dealer_manager = "DealerManager"
    dealer_staff = "DealerStaff"
    customer = "Customer"


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated actor. Replaced wholesale on login/logout, never edited.
    """

    id: str
    display_name: str
    role: Role
    dealer_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        return data


@dataclass(frozen=True, slots=True)
class Session:
    token: str
    principal: Principal
    issued_at: datetime
    expires_at: datetime
    refresh_token: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


# --- Module Notes -----------------------------------------------------------
# `Principal.to_dict` is the shape written to the durable `user` mirror entry;
# `evdms_rules.auth.session_store` reads it back through `parse_role`.
