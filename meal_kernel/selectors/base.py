"""
Module: meal_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors are the query side of the engine: freeze counts, spend
    derivation, dashboard statistics, order listings.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses or
      scalars, not ORM instances.
    - Derived, not stored: weekly freeze counts and spend totals are
      computed from persisted facts on every read.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
