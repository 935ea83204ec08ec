"""
Document modules of the posting engine.

Each module keeps frozen DTOs and enums in ``models.py``, SQLAlchemy
models in ``orm.py`` and its service(s) beside them.  Services flush
through the session they are handed; the orchestrator in
``ledger_services`` owns the unit of work.
"""
