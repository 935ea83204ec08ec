"""
TaxRateResolver -- picks the tax rate applied to a document line.

Resolution order:
    1. explicit ``tax_rate_id`` (active rate of the same company)
    2. ``tax_name`` (active rate of the same company)
    3. numeric ``fallback_pct`` supplied with the line
    4. zero

Inactive rates are skipped, so a line naming a retired rate falls through
to its numeric fallback.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_modules.tax.orm import TaxRateModel

logger = get_logger("modules.tax")

_ZERO = Decimal("0")


class TaxRateResolver:
    def __init__(self, session: Session):
        self._session = session

    def create_rate(
        self,
        *,
        tenant_id: str,
        company_id: str,
        tax_name: str,
        rate_pct: Decimal,
        actor_id: UUID,
    ) -> TaxRateModel:
        if rate_pct < _ZERO:
            raise ValueError(f"Tax rate cannot be negative: {rate_pct}")
        rate = TaxRateModel(
            tenant_id=tenant_id,
            company_id=company_id,
            tax_name=tax_name,
            rate_pct=rate_pct,
            created_by_id=actor_id,
        )
        self._session.add(rate)
        self._session.flush()
        return rate

    def deactivate(self, rate_id: UUID, actor_id: UUID) -> None:
        rate = self._session.get(TaxRateModel, rate_id)
        if rate is not None:
            rate.is_active = False
            rate.updated_by_id = actor_id
            self._session.flush()

    def resolve(
        self,
        tenant_id: str,
        company_id: str,
        *,
        tax_rate_id: UUID | None = None,
        tax_name: str | None = None,
        fallback_pct: Decimal | None = None,
    ) -> Decimal:
        """Rate percentage for a line."""
        scope = (
            TaxRateModel.tenant_id == tenant_id,
            TaxRateModel.company_id == company_id,
            TaxRateModel.is_active.is_(True),
        )
        if tax_rate_id is not None:
            found = self._session.execute(
                select(TaxRateModel.rate_pct).where(TaxRateModel.id == tax_rate_id, *scope)
            ).scalar_one_or_none()
            if found is not None:
                return found
            logger.debug("tax_rate_id_unresolved", extra={"tax_rate_id": str(tax_rate_id)})

        if tax_name:
            found = self._session.execute(
                select(TaxRateModel.rate_pct).where(TaxRateModel.tax_name == tax_name, *scope)
            ).scalar_one_or_none()
            if found is not None:
                return found
            logger.debug("tax_name_unresolved", extra={"tax_name": tax_name})

        if fallback_pct is not None:
            if fallback_pct < _ZERO:
                raise ValueError(f"Tax rate cannot be negative: {fallback_pct}")
            return fallback_pct
        return _ZERO
