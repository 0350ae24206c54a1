"""
Plain records passed between the store and the resolution engine.

The SQL repository maps ORM rows onto these, so the engine never touches
lazy relationships.
"""
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class PermissionRecord:
    id: Optional[str]
    name: str
    slug: str
    scope: Optional[str] = None
    description: Optional[str] = None

    @property
    def identity(self) -> tuple[str, Optional[str]]:
        """(slug, scope): two rows sharing it are the same permission for resolution."""
        return (self.slug, self.scope)


@dataclass(frozen=True)
class RoleRecord:
    id: Optional[str]
    name: str
    slug: str
    description: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


@dataclass
class SyncResult:
    """Names of the permissions a sync attached and detached."""
    attached: list[str] = field(default_factory=list)
    detached: list[str] = field(default_factory=list)
