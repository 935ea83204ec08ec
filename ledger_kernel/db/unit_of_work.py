"""
Module: ledger_kernel.db.unit_of_work
Responsibility: One atomic unit of work per top-level business call.
Architecture position: Kernel > DB.  Used by ledger_services; nested
    services receive ``uow.session`` and only flush.

Invariants enforced:
    - Either every write made through the session commits or none do.
    - Callbacks registered with after_commit() run only after a successful
      commit, in registration order.  A failing callback is logged and
      never rolls back or re-raises into the committed operation.
"""

from collections.abc import Callable
from types import TracebackType

from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")


class UnitOfWork:
    """
    Transactional scope with post-commit hooks.

    Contract:
        Opened exactly once per top-level call.  Business services never
        open their own transaction; they are handed ``session``.

    Usage:
        with UnitOfWork(get_session_factory()) as uow:
            service = BillService(uow.session, ...)
            service.post(...)
            uow.after_commit(lambda: dispatcher.enqueue(...))
    """

    def __init__(self, session_factory: sessionmaker[Session] | Callable[[], Session]):
        self._session_factory = session_factory
        self._session: Session | None = None
        self._callbacks: list[tuple[str, Callable[[], None]]] = []
        self.committed = False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork is not open")
        return self._session

    def __enter__(self) -> "UnitOfWork":
        if self._session is not None:
            raise RuntimeError("UnitOfWork cannot be opened twice")
        self._session = self._session_factory()
        self._callbacks = []
        self.committed = False
        logger.debug("unit_of_work_started")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        session = self.session
        try:
            if exc_type is None:
                try:
                    session.commit()
                except Exception:
                    session.rollback()
                    logger.warning("unit_of_work_commit_failed", exc_info=True)
                    raise
                self.committed = True
                logger.debug("unit_of_work_committed")
            else:
                session.rollback()
                logger.info(
                    "unit_of_work_rolled_back",
                    extra={"error_type": exc_type.__name__},
                )
        finally:
            session.close()
            self._session = None

        if self.committed:
            self._run_after_commit()

    def after_commit(self, callback: Callable[[], None], name: str | None = None) -> None:
        """Register work to run once the transaction has committed."""
        self._callbacks.append((name or getattr(callback, "__name__", "callback"), callback))

    def _run_after_commit(self) -> None:
        callbacks, self._callbacks = self._callbacks, []
        for name, callback in callbacks:
            try:
                callback()
            except Exception:
                logger.error(
                    "post_commit_callback_failed",
                    extra={"callback": name},
                    exc_info=True,
                )
