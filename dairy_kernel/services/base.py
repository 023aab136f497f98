"""
BaseService -- abstract base for all kernel services.

Services receive a SQLAlchemy ``Session`` from the caller and persist with
``session.flush()`` -- never ``session.commit()``.  The caller (normally
``session_scope()``) owns commit and rollback, so a voucher and everything
written alongside it land atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from dairy_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those belong in selectors/.
    """

    def __init__(self, session: Session):
        self.session = session
