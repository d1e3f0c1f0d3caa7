"""
Principal and Role -- the authenticated actor of a request.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Role is a closed enum.  Every predicate in access_policy branches on
      all three members and fails closed on anything else.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """Hierarchical user roles."""

    ADMINISTRADOR = "ADMINISTRADOR"
    COORDINADOR = "COORDINADOR"
    COLABORADOR = "COLABORADOR"


@dataclass(frozen=True)
class Principal:
    """
    The actor performing an operation.

    Not persisted by the kernel; built by the caller per request from its
    authentication layer.  COORDINADOR and COLABORADOR normally carry an
    area; a COLABORADOR without one only reaches tasks assigned to them.
    """

    user_id: UUID
    role: Role
    area_id: UUID | None = None
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMINISTRADOR

    @property
    def is_coordinator(self) -> bool:
        return self.role == Role.COORDINADOR

    @property
    def is_collaborator(self) -> bool:
        return self.role == Role.COLABORADOR

    def in_area(self, area_id: UUID | None) -> bool:
        """True when the principal has an area and it equals ``area_id``."""
        return self.area_id is not None and area_id is not None and self.area_id == area_id
