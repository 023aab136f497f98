"""
Module: dairy_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/values.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - No stored balances: every figure is derived from postings at query time.
    - Selectors return frozen dataclasses, not ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from dairy_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session
