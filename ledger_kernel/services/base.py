"""
BaseService -- abstract base for kernel and module services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` from the caller's unit of work and use
    ``session.flush()``, never ``session.commit()``.

Failure modes:
    - A subclass that commits breaks the all-or-nothing guarantee of the
      posting pipeline.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for services that write through a session.

    Guarantees:
        - The service never commits or rolls back; the caller's
          UnitOfWork owns transaction boundaries.
    """

    def __init__(self, session: Session):
        self.session = session
