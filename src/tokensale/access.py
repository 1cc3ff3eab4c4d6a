"""
Access control for the sale.

Provides role-based permissions and the buyer allow list. Every privileged
ledger operation takes the calling principal explicitly and checks it here
before the core executes; there is no ambient "current caller".

Roles:
- ADMIN: grants/revokes roles, stops/resumes/finalizes the sale
- OPERATOR: records purchases on behalf of buyers
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from tokensale.exceptions import Unauthorized

logger = logging.getLogger(__name__)


class Role(Enum):
    """Standard roles for sale access control."""
    ADMIN = "admin"
    OPERATOR = "operator"


@dataclass
class RoleRegistry:
    """
    Role assignments with an admin-gated audit trail.

    Security:
    - Only admins can grant/revoke roles
    - Audit trail of role changes
    """

    # Admin address (starts with the admin role)
    admin_address: str = ""

    # Role assignments: role -> set of addresses
    roles: dict[str, set[str]] = field(default_factory=dict)

    # Audit log
    role_changes: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        for role in Role:
            self.roles.setdefault(role.value, set())
        if self.admin_address:
            self.admin_address = self.admin_address.lower()
            self.roles[Role.ADMIN.value].add(self.admin_address)

    def grant_role(self, caller: str, role: Role, address: str) -> bool:
        """
        Grant a role to an address.

        Raises:
            Unauthorized: If caller is not an admin
        """
        self.require_role(caller, Role.ADMIN)
        address_norm = address.lower()
        self.roles.setdefault(role.value, set()).add(address_norm)
        self._audit("grant", role, address_norm, caller)
        return True

    def revoke_role(self, caller: str, role: Role, address: str) -> bool:
        """
        Revoke a role from an address.

        Raises:
            Unauthorized: If caller is not an admin
        """
        self.require_role(caller, Role.ADMIN)
        address_norm = address.lower()
        self.roles.get(role.value, set()).discard(address_norm)
        self._audit("revoke", role, address_norm, caller)
        return True

    def has_role(self, role: Role, address: str) -> bool:
        return (address or "").lower() in self.roles.get(role.value, set())

    def require_role(self, caller: str, role: Role) -> None:
        """Raise Unauthorized unless caller holds role."""
        if not self.has_role(role, caller):
            logger.warning(
                "Access denied: role not assigned",
                extra={
                    "event": "rbac.role_not_assigned",
                    "address": (caller or "")[:10],
                    "required_role": role.value,
                },
            )
            raise Unauthorized(
                f"Caller does not have role '{role.value}'",
                details={"caller": caller, "role": role.value},
            )

    def get_role_members(self, role: Role) -> set[str]:
        """Get all addresses with a given role."""
        return set(self.roles.get(role.value, set()))

    def _audit(self, action: str, role: Role, address: str, caller: str) -> None:
        self.role_changes.append({
            "action": action,
            "role": role.value,
            "address": address,
            "admin": caller.lower(),
            "timestamp": time.time(),
        })
        logger.info(
            "Role %s",
            "granted" if action == "grant" else "revoked",
            extra={
                "event": f"rbac.role_{action}",
                "role": role.value,
                "address": address[:10],
                "admin": caller[:10],
            },
        )


class AllowList:
    """Addresses cleared to buy, maintained by registry admins."""

    def __init__(self, registry: RoleRegistry, initial: Iterable[str] = ()) -> None:
        self.registry = registry
        self._allowed: set[str] = {address.lower() for address in initial}

    def is_allowed(self, address: str) -> bool:
        return (address or "").lower() in self._allowed

    def allow(self, caller: str, address: str) -> None:
        self.registry.require_role(caller, Role.ADMIN)
        self._allowed.add(address.lower())
        logger.info(
            "Address allow-listed",
            extra={"event": "allowlist.added", "address": address[:10]},
        )

    def disallow(self, caller: str, address: str) -> None:
        self.registry.require_role(caller, Role.ADMIN)
        self._allowed.discard(address.lower())
        logger.info(
            "Address removed from allow list",
            extra={"event": "allowlist.removed", "address": address[:10]},
        )

    def __len__(self) -> int:
        return len(self._allowed)
