"""
Module ORM registry (``ledger_modules._orm_registry``).

Imports every kernel and module ORM module so ``Base.metadata`` holds the
complete schema before ``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import ledger_modules.tax.orm  # noqa: F401
    import ledger_modules.inventory.orm  # noqa: F401
    import ledger_modules.ap.orm  # noqa: F401
    import ledger_modules.ar.orm  # noqa: F401
    import ledger_modules.cash.orm  # noqa: F401
    import ledger_modules.procurement.orm  # noqa: F401
    # fmt: on
