"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Posting failures must be handled by type, never by parsing messages.
Every error in the engine:
  1. Has its own exception class (catch by type, not message)
  2. Has a ``code`` class attribute (machine-readable, API-safe)
  3. Has a ``kind`` class attribute (the coarse category the request layer
     maps to a response)
  4. Carries structured data as attributes, exposed through ``to_dict()``

Example:
    try:
        orchestrator.post_bill(bill_id, actor_id=actor)
    except PeriodLockedError as e:
        respond(409, e.to_dict())   # {"kind": "period_locked", ...}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- PostingError
    |   +-- AlreadyPostedError
    |   +-- UnbalancedEntryError
    |   +-- EntryNotDraftError
    |   +-- InvalidDocumentError
    |
    +-- AccountError
    |   +-- MissingAccountsError
    |   +-- AccountNotFoundError
    |   +-- AccountHasChildrenError
    |   +-- AccountReferencedError
    |   +-- AccountCycleError
    |   +-- DuplicateAccountCodeError
    |
    +-- PeriodError
    |   +-- PeriodLockedError
    |   +-- InvalidOverrideError
    |   +-- InvalidPeriodTransitionError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- NegativeStockPreventedError
    |   +-- UnitCostRequiredError
    |   +-- InvalidQuantityError
    |   +-- LocationRequiredError
    |   +-- ProductNotFoundError
    |
    +-- ProcurementError
    |   +-- InvalidStatusTransitionError
    |   +-- MatchExceptionNotFoundError
    |
    +-- AuditChainBrokenError
    |
    +-- DocumentNotFoundError
    |
    +-- ImmutabilityViolationError

All abort-class errors leave prior state untouched: they are raised before
any write or inside the caller's unit of work, which rolls back.
"""

from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    Subclasses set ``code`` and ``kind`` class attributes and store their
    structured context as public instance attributes.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    kind: str = "ledger_error"

    def context(self) -> dict[str, Any]:
        """Structured context: every public instance attribute."""
        return {
            k: (str(v) if isinstance(v, Decimal) else v)
            for k, v in vars(self).items()
            if not k.startswith("_")
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": str(self),
            "context": self.context(),
        }


class ConfigurationError(LedgerKernelError):
    """Engine settings could not be loaded or are invalid."""

    code: str = "CONFIGURATION_ERROR"
    kind: str = "configuration"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting {setting}: {reason}")


# Posting exceptions


class PostingError(LedgerKernelError):
    """Base exception for posting errors."""

    code: str = "POSTING_ERROR"
    kind: str = "posting"


class AlreadyPostedError(PostingError):
    """Document is not in draft and cannot be posted again."""

    code: str = "ALREADY_POSTED"
    kind: str = "already_posted"

    def __init__(self, document_type: str, document_id: str, status: str):
        self.document_type = document_type
        self.document_id = document_id
        self.status = status
        super().__init__(
            f"{document_type} {document_id} is already {status} and cannot be posted"
        )


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"
    kind: str = "unbalanced_entry"

    def __init__(self, entry_id: str, debits: Decimal, credits: Decimal):
        self.entry_id = entry_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced entry {entry_id}: debits={debits}, credits={credits}"
        )


class EntryNotDraftError(PostingError):
    """Lines can only be added to a draft entry."""

    code: str = "ENTRY_NOT_DRAFT"
    kind: str = "entry_not_draft"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Journal entry {entry_id} is {status}, not draft")


class InvalidDocumentError(PostingError):
    """Document payload is structurally unusable for posting."""

    code: str = "INVALID_DOCUMENT"
    kind: str = "invalid_document"

    def __init__(self, document_type: str, reason: str):
        self.document_type = document_type
        self.reason = reason
        super().__init__(f"Invalid {document_type}: {reason}")


# Account exceptions


class AccountError(LedgerKernelError):
    """Base exception for account errors."""

    code: str = "ACCOUNT_ERROR"
    kind: str = "account"


class MissingAccountsError(AccountError):
    """One or more required account purposes have no mapped account."""

    code: str = "MISSING_ACCOUNTS"
    kind: str = "missing_accounts"

    def __init__(self, company_id: str, purposes: list[str]):
        self.company_id = company_id
        self.purposes = purposes
        super().__init__(
            f"Missing account mappings for company {company_id}: "
            f"{', '.join(purposes)}"
        )


class AccountNotFoundError(AccountError):
    """Account does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"
    kind: str = "not_found"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountHasChildrenError(AccountError):
    """Account has child accounts and cannot be deleted."""

    code: str = "ACCOUNT_HAS_CHILDREN"
    kind: str = "account_in_use"

    def __init__(self, account_id: str, child_count: int):
        self.account_id = account_id
        self.child_count = child_count
        super().__init__(
            f"Account {account_id} has {child_count} child account(s) and cannot be deleted"
        )


class AccountReferencedError(AccountError):
    """Account is referenced by journal lines and cannot be deleted."""

    code: str = "ACCOUNT_REFERENCED"
    kind: str = "account_in_use"

    def __init__(self, account_id: str, line_count: int):
        self.account_id = account_id
        self.line_count = line_count
        super().__init__(
            f"Account {account_id} is referenced by {line_count} journal line(s)"
        )


class AccountCycleError(AccountError):
    """Re-parenting would introduce a cycle into the account tree."""

    code: str = "ACCOUNT_CYCLE"
    kind: str = "account_hierarchy"

    def __init__(self, account_id: str, parent_id: str):
        self.account_id = account_id
        self.parent_id = parent_id
        super().__init__(
            f"Setting parent of {account_id} to {parent_id} would create a cycle"
        )


class DuplicateAccountCodeError(AccountError):
    """Account code already exists in the company."""

    code: str = "DUPLICATE_ACCOUNT_CODE"
    kind: str = "account_hierarchy"

    def __init__(self, company_id: str, account_code: str):
        self.company_id = company_id
        self.account_code = account_code
        super().__init__(
            f"Account code {account_code} already exists in company {company_id}"
        )


# Period exceptions


class PeriodError(LedgerKernelError):
    """Base exception for period errors."""

    code: str = "PERIOD_ERROR"
    kind: str = "period"


class PeriodLockedError(PeriodError):
    """Posting into a locked or closed period without a valid override."""

    code: str = "PERIOD_LOCKED"
    kind: str = "period_locked"

    def __init__(self, period_key: str, status: str, action: str = "post"):
        self.period_key = period_key
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} into {period_key} because period is {status}"
        )


class InvalidOverrideError(PeriodError):
    """Override requested without a sufficient justification."""

    code: str = "INVALID_OVERRIDE"
    kind: str = "invalid_override"

    def __init__(self, period_key: str, min_length: int, actual_length: int):
        self.period_key = period_key
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"Override for {period_key} requires a justification of at least "
            f"{min_length} characters (got {actual_length})"
        )


class InvalidPeriodTransitionError(PeriodError):
    """Period status change is not allowed."""

    code: str = "INVALID_PERIOD_TRANSITION"
    kind: str = "invalid_transition"

    def __init__(self, period_key: str, from_status: str, to_status: str):
        self.period_key = period_key
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period_key} cannot move from {from_status} to {to_status}"
        )


# Inventory exceptions


class InventoryError(LedgerKernelError):
    """Base exception for inventory errors."""

    code: str = "INVENTORY_ERROR"
    kind: str = "inventory"


class InsufficientStockError(InventoryError):
    """Outbound movement exceeds the available stock."""

    code: str = "INSUFFICIENT_STOCK"
    kind: str = "insufficient_stock"

    def __init__(
        self,
        product_id: str,
        available: Decimal,
        required: Decimal,
        location_id: str | None = None,
    ):
        self.product_id = product_id
        self.available = available
        self.required = required
        self.shortfall = required - available
        self.location_id = location_id
        where = f" at location {location_id}" if location_id else ""
        super().__init__(
            f"Insufficient stock for product {product_id}{where}: "
            f"available={available}, required={required}, shortfall={self.shortfall}"
        )


class NegativeStockPreventedError(InventoryError):
    """Resulting stock quantity would be negative."""

    code: str = "NEGATIVE_STOCK_PREVENTED"
    kind: str = "negative_stock_prevented"

    def __init__(self, product_id: str, current: Decimal, delta: Decimal):
        self.product_id = product_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Movement of {delta} on product {product_id} would leave "
            f"stock at {current + delta}"
        )


class UnitCostRequiredError(InventoryError):
    """Movement type requires a positive unit cost."""

    code: str = "UNIT_COST_REQUIRED"
    kind: str = "unit_cost_required"

    def __init__(self, movement_type: str, unit_cost: Decimal | None):
        self.movement_type = movement_type
        self.unit_cost = unit_cost
        super().__init__(
            f"{movement_type} movements require a positive unit cost (got {unit_cost})"
        )


class InvalidQuantityError(InventoryError):
    """Movement quantity is not positive."""

    code: str = "INVALID_QUANTITY"
    kind: str = "invalid_quantity"

    def __init__(self, movement_type: str, quantity: Decimal):
        self.movement_type = movement_type
        self.quantity = quantity
        super().__init__(
            f"{movement_type} movements require a positive quantity (got {quantity})"
        )


class LocationRequiredError(InventoryError):
    """Product tracks stock per location but no location was given."""

    code: str = "LOCATION_REQUIRED"
    kind: str = "location_required"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(
            f"Product {product_id} is stocked per location; a location is required"
        )


class ProductNotFoundError(InventoryError):
    """Product does not exist."""

    code: str = "PRODUCT_NOT_FOUND"
    kind: str = "not_found"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


# Procurement exceptions


class ProcurementError(LedgerKernelError):
    """Base exception for procurement errors."""

    code: str = "PROCUREMENT_ERROR"
    kind: str = "procurement"


class InvalidStatusTransitionError(ProcurementError):
    """Document status change is not allowed."""

    code: str = "INVALID_STATUS_TRANSITION"
    kind: str = "invalid_transition"

    def __init__(self, document_type: str, document_id: str, from_status: str, to_status: str):
        self.document_type = document_type
        self.document_id = document_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{document_type} {document_id} cannot move from {from_status} to {to_status}"
        )


class MatchExceptionNotFoundError(ProcurementError):
    """No open match exception exists for the purchase order."""

    code: str = "MATCH_EXCEPTION_NOT_FOUND"
    kind: str = "not_found"

    def __init__(self, purchase_order_id: str):
        self.purchase_order_id = purchase_order_id
        super().__init__(
            f"No open match exception for purchase order {purchase_order_id}"
        )


class AuditChainBrokenError(LedgerKernelError):
    """Stored audit hash does not match the recomputed chain."""

    code: str = "AUDIT_CHAIN_BROKEN"
    kind: str = "audit_chain_broken"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: expected {expected_hash}, got {actual_hash}"
        )


class DocumentNotFoundError(LedgerKernelError):
    """Referenced document does not exist in the tenant/company scope."""

    code: str = "DOCUMENT_NOT_FOUND"
    kind: str = "not_found"

    def __init__(self, document_type: str, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type} not found: {document_id}")


class ImmutabilityViolationError(LedgerKernelError):
    """
    Attempted to modify or delete an immutable record.

    Posted journal entries and lines, audit events, inventory movements,
    payment applications and match exceptions are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"
    kind: str = "immutability_violation"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
