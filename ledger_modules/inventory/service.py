"""
Inventory Ledger (``ledger_modules.inventory.service``).

Responsibility
--------------
Records stock movements and keeps the aggregate product quantity, the
per-location quantities and the available (unreserved) quantity in step.
Validation rules live in ``ledger_engines.stock``; this service loads and
locks the product, applies the rules and writes the results.

Architecture
------------
Layer: **Modules**.  Receives the caller's session and only flushes; the
unit of work that opened the session owns the commit.

Invariants
----------
- ``stock_quantity >= 0`` after every movement.
- For location-tracked products, ``stock_quantity`` equals the sum of
  ProductLocation quantities after every movement.
- ``available_quantity == stock_quantity - reserved_quantity``.
- ``available_quantity >= 0``: outbound movements other than transfers
  cannot draw down reserved stock.
- Movement rows are append-only.

Failure Modes
-------------
- ``ProductNotFoundError`` for an unknown or foreign product.
- ``InsufficientStockError`` / ``UnitCostRequiredError`` /
  ``InvalidQuantityError`` / ``NegativeStockPreventedError`` from the stock
  engine, raised before any write.
- ``LocationRequiredError`` when a tracked product moves without a location.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_engines.stock import OUTBOUND_TYPES, MovementType, evaluate_movement
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    InsufficientStockError,
    InvalidDocumentError,
    InvalidQuantityError,
    LocationRequiredError,
    ProductNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_modules.inventory.models import MovementRecord, ProductType, StockLevel
from ledger_modules.inventory.orm import (
    InventoryMovementModel,
    LocationModel,
    ProductLocationModel,
    ProductModel,
)

logger = get_logger("modules.inventory.service")

_ZERO = Decimal("0")


class InventoryLedger:
    """
    Stock movement ledger for one session.

    Contract
    --------
    ``record_movement`` validates, then writes the movement, the product
    quantities and the location quantity together.  Nothing is written when
    validation fails.

    Non-goals
    ---------
    - Journal entries.  Stock valuation postings belong to the document
      converters (bills, invoices) that call this ledger.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # =========================================================================
    # Master data
    # =========================================================================

    def create_location(
        self,
        *,
        tenant_id: str,
        company_id: str,
        code: str,
        name: str,
        actor_id: UUID,
    ) -> LocationModel:
        location = LocationModel(
            tenant_id=tenant_id,
            company_id=company_id,
            code=code,
            name=name,
            created_by_id=actor_id,
        )
        self._session.add(location)
        self._session.flush()
        return location

    def create_product(
        self,
        *,
        tenant_id: str,
        company_id: str,
        sku: str,
        name: str,
        actor_id: UUID,
        product_type: ProductType = ProductType.INVENTORY,
        cost_price: Decimal = _ZERO,
        sale_price: Decimal = _ZERO,
        default_location_id: UUID | None = None,
    ) -> ProductModel:
        """Create a product with zero stock."""
        if default_location_id is not None:
            self._get_location(tenant_id, company_id, default_location_id)
        product = ProductModel(
            tenant_id=tenant_id,
            company_id=company_id,
            sku=sku,
            name=name,
            product_type=ProductType(product_type).value,
            stock_quantity=_ZERO,
            reserved_quantity=_ZERO,
            available_quantity=_ZERO,
            cost_price=cost_price,
            sale_price=sale_price,
            default_location_id=default_location_id,
            created_by_id=actor_id,
        )
        self._session.add(product)
        self._session.flush()
        logger.info(
            "product_created",
            extra={"company_id": company_id, "sku": sku, "product_type": product.product_type},
        )
        return product

    def get_product(
        self,
        tenant_id: str,
        company_id: str,
        product_id: UUID,
        *,
        for_update: bool = False,
    ) -> ProductModel:
        stmt = select(ProductModel).where(
            ProductModel.id == product_id,
            ProductModel.tenant_id == tenant_id,
            ProductModel.company_id == company_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        product = self._session.execute(stmt).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def _get_location(self, tenant_id: str, company_id: str, location_id: UUID) -> LocationModel:
        location = self._session.get(LocationModel, location_id)
        if location is None or location.tenant_id != tenant_id or location.company_id != company_id:
            raise InvalidDocumentError("InventoryMovement", f"unknown location {location_id}")
        return location

    # =========================================================================
    # Location helpers
    # =========================================================================

    def _location_rows(self, product_id: UUID) -> list[ProductLocationModel]:
        return list(
            self._session.execute(
                select(ProductLocationModel).where(ProductLocationModel.product_id == product_id)
            ).scalars()
        )

    def _location_quantity(self, product_id: UUID, location_id: UUID) -> Decimal:
        quantity = self._session.execute(
            select(ProductLocationModel.quantity).where(
                ProductLocationModel.product_id == product_id,
                ProductLocationModel.location_id == location_id,
            )
        ).scalar_one_or_none()
        return quantity if quantity is not None else _ZERO

    def _is_location_tracked(self, product: ProductModel) -> bool:
        if product.default_location_id is not None:
            return True
        count = self._session.execute(
            select(func.count(ProductLocationModel.id)).where(
                ProductLocationModel.product_id == product.id
            )
        ).scalar_one()
        return count > 0

    def _increment_location(
        self,
        product: ProductModel,
        location_id: UUID,
        delta: Decimal,
        actor_id: UUID,
    ) -> None:
        # Serialized by the product row lock taken in record_movement.
        row = self._session.execute(
            select(ProductLocationModel).where(
                ProductLocationModel.product_id == product.id,
                ProductLocationModel.location_id == location_id,
            )
        ).scalar_one_or_none()
        if row is not None:
            row.quantity = row.quantity + delta
            row.updated_by_id = actor_id
        else:
            self._session.add(
                ProductLocationModel(
                    tenant_id=product.tenant_id,
                    company_id=product.company_id,
                    product_id=product.id,
                    location_id=location_id,
                    quantity=delta,
                    created_by_id=actor_id,
                )
            )
        self._session.flush()

    # =========================================================================
    # Movements
    # =========================================================================

    def record_movement(
        self,
        *,
        tenant_id: str,
        company_id: str,
        product_id: UUID,
        movement_type: MovementType,
        quantity: Decimal,
        actor_id: UUID,
        location_id: UUID | None = None,
        unit_cost: Decimal | None = None,
        reference: str | None = None,
        reference_type: str | None = None,
        reference_id: UUID | None = None,
    ) -> MovementRecord:
        """
        Validate and record one stock movement.

        Outbound-class types are stored with a negative quantity.  They may
        not consume reserved stock, except TRANSFER_OUT, which leaves the
        product total unchanged.  A location-tracked product that is given
        no location falls back to its default location.

        Raises:
            ProductNotFoundError, LocationRequiredError, InsufficientStockError,
            UnitCostRequiredError, InvalidQuantityError,
            NegativeStockPreventedError.
        """
        movement_type = MovementType(movement_type)
        product = self.get_product(tenant_id, company_id, product_id, for_update=True)

        tracked = self._is_location_tracked(product)
        if location_id is None:
            location_id = product.default_location_id
        if tracked and location_id is None:
            raise LocationRequiredError(str(product_id))
        if location_id is not None:
            self._get_location(tenant_id, company_id, location_id)
            if not tracked and product.stock_quantity != _ZERO:
                raise InvalidDocumentError(
                    "InventoryMovement",
                    f"product {product_id} holds untracked stock; a location cannot be introduced",
                )

        outcome = evaluate_movement(
            movement_type,
            quantity,
            product.stock_quantity,
            unit_cost=unit_cost,
            product_id=str(product_id),
            location_id=str(location_id) if location_id else None,
        )

        if location_id is not None and movement_type in OUTBOUND_TYPES:
            at_location = self._location_quantity(product.id, location_id)
            if -outcome.delta > at_location:
                raise InsufficientStockError(
                    str(product_id), at_location, -outcome.delta, str(location_id)
                )
        if outcome.delta < _ZERO and movement_type != MovementType.TRANSFER_OUT:
            # Reserved stock leaves only after release(); a transfer keeps it on hand.
            available = product.stock_quantity - product.reserved_quantity
            if -outcome.delta > available:
                raise InsufficientStockError(str(product_id), available, -outcome.delta)

        product.stock_quantity = outcome.after
        product.available_quantity = outcome.after - product.reserved_quantity
        product.updated_by_id = actor_id

        if location_id is not None:
            self._increment_location(product, location_id, outcome.delta, actor_id)

        movement = InventoryMovementModel(
            tenant_id=tenant_id,
            company_id=company_id,
            product_id=product.id,
            location_id=location_id,
            movement_type=movement_type.value,
            quantity=outcome.delta,
            unit_cost=unit_cost,
            reference=reference,
            reference_type=reference_type,
            reference_id=reference_id,
            occurred_at=self._clock.now(),
            stock_after=outcome.after,
            created_by_id=actor_id,
        )
        self._session.add(movement)
        self._session.flush()

        logger.info(
            "movement_recorded",
            extra={
                "product_id": str(product_id),
                "movement_type": movement_type.value,
                "delta": outcome.delta,
                "stock_after": outcome.after,
                "location_id": str(location_id) if location_id else None,
                "reference": reference,
            },
        )
        return movement.to_dto()

    def transfer(
        self,
        *,
        tenant_id: str,
        company_id: str,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        reference: str | None = None,
    ) -> tuple[MovementRecord, MovementRecord]:
        """Move stock between two locations as a TRANSFER_OUT / TRANSFER_IN pair."""
        if from_location_id == to_location_id:
            raise InvalidDocumentError("InventoryTransfer", "source and destination are the same location")

        outbound = self.record_movement(
            tenant_id=tenant_id,
            company_id=company_id,
            product_id=product_id,
            movement_type=MovementType.TRANSFER_OUT,
            quantity=quantity,
            actor_id=actor_id,
            location_id=from_location_id,
            reference=reference,
            reference_type="InventoryTransfer",
        )
        inbound = self.record_movement(
            tenant_id=tenant_id,
            company_id=company_id,
            product_id=product_id,
            movement_type=MovementType.TRANSFER_IN,
            quantity=quantity,
            actor_id=actor_id,
            location_id=to_location_id,
            reference=reference,
            reference_type="InventoryTransfer",
        )
        return outbound, inbound

    # =========================================================================
    # Reservations
    # =========================================================================

    def reserve(
        self,
        *,
        tenant_id: str,
        company_id: str,
        product_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
    ) -> ProductModel:
        """
        Reserve stock against future issue.

        Raises:
            InvalidQuantityError: Quantity is not positive.
            InsufficientStockError: Quantity exceeds available stock.
        """
        if quantity <= _ZERO:
            raise InvalidQuantityError("RESERVE", quantity)
        product = self.get_product(tenant_id, company_id, product_id, for_update=True)
        if quantity > product.available_quantity:
            raise InsufficientStockError(str(product_id), product.available_quantity, quantity)
        product.reserved_quantity += quantity
        product.available_quantity = product.stock_quantity - product.reserved_quantity
        product.updated_by_id = actor_id
        self._session.flush()
        return product

    def release(
        self,
        *,
        tenant_id: str,
        company_id: str,
        product_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
    ) -> ProductModel:
        """Release part of a reservation; more than is reserved is rejected."""
        product = self.get_product(tenant_id, company_id, product_id, for_update=True)
        if quantity <= _ZERO or quantity > product.reserved_quantity:
            raise InvalidQuantityError("RELEASE", quantity)
        product.reserved_quantity -= quantity
        product.available_quantity = product.stock_quantity - product.reserved_quantity
        product.updated_by_id = actor_id
        self._session.flush()
        return product

    # =========================================================================
    # Queries
    # =========================================================================

    def stock_level(self, tenant_id: str, company_id: str, product_id: UUID) -> StockLevel:
        product = self.get_product(tenant_id, company_id, product_id)
        return StockLevel(
            product_id=product.id,
            stock_quantity=product.stock_quantity,
            reserved_quantity=product.reserved_quantity,
            available_quantity=product.available_quantity,
            by_location={row.location_id: row.quantity for row in self._location_rows(product.id)},
        )

    def verify_location_totals(self, tenant_id: str, company_id: str, product_id: UUID) -> bool:
        """True when the product's per-location quantities add up to its stock."""
        level = self.stock_level(tenant_id, company_id, product_id)
        if not level.by_location:
            return True
        matches = level.location_total == level.stock_quantity
        if not matches:
            logger.error(
                "location_totals_mismatch",
                extra={
                    "product_id": str(product_id),
                    "stock_quantity": level.stock_quantity,
                    "location_total": level.location_total,
                },
            )
        return matches

    def movements(self, tenant_id: str, company_id: str, product_id: UUID) -> list[MovementRecord]:
        rows = self._session.execute(
            select(InventoryMovementModel)
            .where(
                InventoryMovementModel.tenant_id == tenant_id,
                InventoryMovementModel.company_id == company_id,
                InventoryMovementModel.product_id == product_id,
            )
            .order_by(InventoryMovementModel.occurred_at, InventoryMovementModel.created_at)
        ).scalars()
        return [row.to_dto() for row in rows]
