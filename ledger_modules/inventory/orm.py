"""
Module: ledger_modules.inventory.orm
Responsibility: SQLAlchemy persistence for products, locations, per-location
    quantities and the inventory movement ledger.

Invariants enforced:
    - Quantities and costs are Decimal (Numeric(38, 9)).
    - One ProductLocation row per (product, location).
    - InventoryMovement rows are append-only (db/immutability.py).
    - For location-tracked products, stock_quantity equals the sum of
      ProductLocation quantities after every movement (InventoryLedger).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import ScopedBase, UUIDString
from ledger_modules.inventory.models import MovementRecord, MovementType, ProductType


class LocationModel(ScopedBase):
    """Warehouse or stocking location."""

    __tablename__ = "inventory_locations"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_location_company_code"),
    )

    code: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<LocationModel {self.code}>"


class ProductModel(ScopedBase):
    """
    Product master with aggregate stock and current cost.

    Guarantees:
        - available_quantity == stock_quantity - reserved_quantity after
          every ledger write.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("company_id", "sku", name="uq_product_company_sku"),
        Index("idx_product_name", "company_id", "name"),
    )

    sku: Mapped[str] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(255))
    product_type: Mapped[str] = mapped_column(String(20), default=ProductType.INVENTORY.value)

    stock_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reserved_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    available_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cost_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sale_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    default_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("inventory_locations.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    @property
    def is_inventory(self) -> bool:
        return self.product_type == ProductType.INVENTORY

    def __repr__(self) -> str:
        return f"<ProductModel {self.sku} stock={self.stock_quantity}>"


class ProductLocationModel(ScopedBase):
    """Per-location quantity of one product."""

    __tablename__ = "product_locations"

    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_product_location"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("products.id"))
    location_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("inventory_locations.id"))
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<ProductLocationModel {self.product_id}@{self.location_id} qty={self.quantity}>"


class InventoryMovementModel(ScopedBase):
    """
    Immutable stock movement.

    ``quantity`` is signed: outbound-class movements are negative.
    ``reference_type``/``reference_id`` point at the originating document.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index("idx_movement_product", "product_id", "occurred_at"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("products.id"))
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("inventory_locations.id"), nullable=True
    )
    movement_type: Mapped[str] = mapped_column(String(30))
    quantity: Mapped[Decimal] = mapped_column()
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    stock_after: Mapped[Decimal] = mapped_column()

    def to_dto(self) -> MovementRecord:
        return MovementRecord(
            movement_id=self.id,
            product_id=self.product_id,
            location_id=self.location_id,
            movement_type=MovementType(self.movement_type),
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            reference=self.reference,
            occurred_at=self.occurred_at,
            stock_after=self.stock_after,
        )

    def __repr__(self) -> str:
        return f"<InventoryMovementModel {self.movement_type} {self.quantity} product={self.product_id}>"
