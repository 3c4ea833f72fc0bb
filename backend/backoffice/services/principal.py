from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Set, Tuple

PermissionMatrix = Dict[str, Set[str]]


@dataclass(frozen=True)
class RoleRef:
    id: int
    slug: str
    name: str
    level: int


@dataclass(frozen=True)
class Principal:
    """Resolved, currently valid admin identity for one request."""
    admin_id: int
    email: str
    username: str
    full_name: str
    roles: Tuple[RoleRef, ...] = ()
    matrix: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    @property
    def role_slugs(self) -> Set[str]:
        return {r.slug for r in self.roles}

    def can(self, module: str, operation: str) -> bool:
        return operation in self.matrix.get(module, frozenset())


def freeze_matrix(matrix: PermissionMatrix) -> Dict[str, FrozenSet[str]]:
    return {module: frozenset(ops) for module, ops in matrix.items()}


__all__ = ['PermissionMatrix', 'RoleRef', 'Principal', 'freeze_matrix']
