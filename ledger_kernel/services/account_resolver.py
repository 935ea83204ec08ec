"""
AccountResolver -- semantic purpose -> concrete account.

Responsibility:
    Maps an AccountPurpose (CASH, AR, AP, INVENTORY, EXPENSE, FX_GAIN,
    FX_LOSS, ...) to the company's mapped account.  ``require()`` checks a
    whole set of purposes up front so a posting aborts before any write
    when one is missing.

Invariants enforced:
    - Only AccountPurpose members can be requested.
    - Lookups are scoped by tenant and company.

Cache:
    Resolved mappings are held in an explicitly constructed
    ``AccountMappingCache`` passed in by the caller.  ``map_purpose()``
    invalidates the affected company; ``invalidate()`` clears it all.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from threading import Lock
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import AccountNotFoundError, MissingAccountsError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountMapping, AccountPurpose

logger = get_logger("services.account_resolver")


@dataclass(frozen=True)
class AccountRef:
    """Resolved account for one purpose."""

    account_id: UUID
    code: str
    name: str
    purpose: AccountPurpose


class AccountMappingCache:
    """Process-local cache of resolved mappings keyed by company."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str, AccountPurpose], AccountRef] = {}
        self._lock = Lock()

    def get(self, tenant_id: str, company_id: str, purpose: AccountPurpose) -> AccountRef | None:
        with self._lock:
            return self._entries.get((tenant_id, company_id, purpose))

    def put(self, tenant_id: str, company_id: str, ref: AccountRef) -> None:
        with self._lock:
            self._entries[(tenant_id, company_id, ref.purpose)] = ref

    def invalidate(self, tenant_id: str | None = None, company_id: str | None = None) -> None:
        """Drop one company's entries, or everything when no company is given."""
        with self._lock:
            if company_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[1] == company_id
                        and (tenant_id is None or k[0] == tenant_id)]:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class AccountResolver:
    """
    Resolves account purposes for a company.

    Contract:
        ``resolve`` returns None when unmapped; ``require`` raises
        MissingAccountsError naming every missing purpose.

    Non-goals:
        - Does NOT create accounts.
    """

    def __init__(self, session: Session, cache: AccountMappingCache | None = None):
        self._session = session
        self._cache = cache

    def resolve(
        self, tenant_id: str, company_id: str, purpose: AccountPurpose
    ) -> AccountRef | None:
        purpose = AccountPurpose(purpose)
        if self._cache is not None:
            cached = self._cache.get(tenant_id, company_id, purpose)
            if cached is not None:
                return cached

        row = self._session.execute(
            select(Account)
            .join(AccountMapping, AccountMapping.account_id == Account.id)
            .where(
                AccountMapping.tenant_id == tenant_id,
                AccountMapping.company_id == company_id,
                AccountMapping.purpose == purpose,
                Account.is_active.is_(True),
            )
        ).scalar_one_or_none()

        if row is None:
            return None

        ref = AccountRef(account_id=row.id, code=row.code, name=row.name, purpose=purpose)
        if self._cache is not None:
            self._cache.put(tenant_id, company_id, ref)
        return ref

    def require(
        self,
        tenant_id: str,
        company_id: str,
        purposes: Iterable[AccountPurpose],
    ) -> dict[AccountPurpose, AccountRef]:
        """
        Resolve every purpose or fail before any write.

        Raises:
            MissingAccountsError: Listing all unmapped purposes.
        """
        resolved: dict[AccountPurpose, AccountRef] = {}
        missing: list[str] = []
        for purpose in purposes:
            ref = self.resolve(tenant_id, company_id, purpose)
            if ref is None:
                missing.append(AccountPurpose(purpose).value)
            else:
                resolved[AccountPurpose(purpose)] = ref

        if missing:
            logger.warning(
                "account_mapping_missing",
                extra={"company_id": company_id, "purposes": missing},
            )
            raise MissingAccountsError(company_id, missing)
        return resolved

    def map_purpose(
        self,
        tenant_id: str,
        company_id: str,
        purpose: AccountPurpose,
        account_id: UUID,
        actor_id: UUID,
    ) -> AccountMapping:
        """Create or repoint the mapping for ``purpose`` and invalidate the cache."""
        account = self._session.get(Account, account_id)
        if account is None or account.company_id != company_id or account.tenant_id != tenant_id:
            raise AccountNotFoundError(str(account_id))

        purpose = AccountPurpose(purpose)
        mapping = self._session.execute(
            select(AccountMapping).where(
                AccountMapping.tenant_id == tenant_id,
                AccountMapping.company_id == company_id,
                AccountMapping.purpose == purpose,
            )
        ).scalar_one_or_none()

        if mapping is None:
            mapping = AccountMapping(
                tenant_id=tenant_id,
                company_id=company_id,
                purpose=purpose,
                account_id=account_id,
                created_by_id=actor_id,
            )
            self._session.add(mapping)
        else:
            mapping.account_id = account_id
            mapping.updated_by_id = actor_id
        self._session.flush()

        if self._cache is not None:
            self._cache.invalidate(tenant_id, company_id)

        logger.info(
            "account_purpose_mapped",
            extra={
                "company_id": company_id,
                "purpose": purpose.value,
                "account_code": account.code,
            },
        )
        return mapping

    def invalidate(self) -> None:
        if self._cache is not None:
            self._cache.invalidate()
