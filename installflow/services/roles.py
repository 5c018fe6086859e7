"""Effective user role from profile and partner membership."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RoleKind(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STANDARD_OFFICE_USER = "standard_office_user"
    ENGINEER = "engineer"
    CLIENT = "client"
    PARTNER = "partner"
    NONE = "none"


OFFICE_ROLES = frozenset({RoleKind.ADMIN, RoleKind.MANAGER, RoleKind.STANDARD_OFFICE_USER})


@dataclass(frozen=True)
class Profile:
    role: str
    status: str = "active"


@dataclass(frozen=True)
class PartnerMembership:
    partner_id: str
    role: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class Role:
    kind: RoleKind
    partner_id: str | None = None
    partner_role: str | None = None

    @property
    def is_office(self) -> bool:
        return self.kind in OFFICE_ROLES

    @property
    def home_path(self) -> str:
        if self.kind in OFFICE_ROLES:
            return "/admin"
        if self.kind == RoleKind.NONE:
            return "/auth"
        return f"/{self.kind.value}"


def resolve_role(profile: Profile | None, partner_membership: PartnerMembership | None) -> Role:
    """Active partner membership wins, then an active profile, else no role."""
    if partner_membership is not None and partner_membership.is_active:
        return Role(RoleKind.PARTNER, partner_membership.partner_id, partner_membership.role or None)
    if profile is None or profile.status != "active":
        return Role(RoleKind.NONE)
    try:
        return Role(RoleKind(profile.role))
    except ValueError:
        return Role(RoleKind.NONE)
