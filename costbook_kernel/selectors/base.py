"""
Module: costbook_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure domain/ package.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return frozen DTOs, never ORM instances.
    - Every query is scoped to one user_id.
    - Absence is reported as None / empty, except in ``require_*`` helpers
      that raise the matching NotFoundError.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Contract:
        Accepts a Session from the caller; the caller owns its transaction.
    """

    def __init__(self, session: Session):
        self.session = session
