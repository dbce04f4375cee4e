"""
Role-based permission table.

Grants map an entity-set (or operation) name to the permission kinds callers
may exercise on it. The table is built once when the API is configured and is
read-only afterwards. Lookups are exact-match on name; a name with no grant is
denied everything.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from northwind.services.errors import AuthorizationError

logger = logging.getLogger(__name__)


class PermissionKind(str, Enum):
    INSPECT = "Inspect"
    READ = "Read"
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    ALL = "All"
    EXECUTE = "Execute"


@dataclass(frozen=True)
class Grant:
    """A single grant. ``to`` restricts it to one role; None grants every caller."""

    permission: PermissionKind
    on: str
    to: Optional[str] = None


class PermissionTable:
    def __init__(self, grants: Iterable[Grant]):
        table: Dict[str, Dict[Optional[str], set]] = {}
        for grant in grants:
            table.setdefault(grant.on, {}).setdefault(grant.to, set()).add(grant.permission)

        self._grants: Dict[str, Dict[Optional[str], FrozenSet[PermissionKind]]] = {
            name: {role: frozenset(kinds) for role, kinds in by_role.items()} for name, by_role in table.items()
        }

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._grants))

    def granted(self, name: str, roles: Iterable[str] = ()) -> FrozenSet[PermissionKind]:
        """All kinds granted on ``name`` to a caller holding ``roles``."""
        by_role = self._grants.get(name)
        if not by_role:
            return frozenset()

        kinds = set(by_role.get(None, ()))
        for role in roles:
            kinds.update(by_role.get(role, ()))
        return frozenset(kinds)

    def is_allowed(self, name: str, kind: PermissionKind, roles: Iterable[str] = ()) -> bool:
        kinds = self.granted(name, roles)
        return PermissionKind.ALL in kinds or kind in kinds

    def require(self, name: str, kind: PermissionKind, roles: Iterable[str] = ()) -> None:
        """Raise AuthorizationError unless ``kind`` is granted on ``name``."""
        roles = tuple(roles)
        if not self.is_allowed(name, kind, roles):
            logger.info("Denied %s on %s (roles=%s)", kind.value, name, list(roles))
            raise AuthorizationError(name, kind.value)
