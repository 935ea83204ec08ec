"""Tax rates (``ledger_modules.tax``)."""

from ledger_modules.tax.service import TaxRateResolver

__all__ = ["TaxRateResolver"]
