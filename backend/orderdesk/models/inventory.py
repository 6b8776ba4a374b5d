from __future__ import annotations

from ..extensions import db
from orderdesk.money import ZERO, money_json
from orderdesk.time_utils import to_utc_z


LOCATIONS = ("main_warehouse", "secondary_warehouse", "retail_store", "online_fulfillment")

STOCK_IN = "in_stock"
STOCK_LOW = "low_stock"
STOCK_OUT = "out_of_stock"


def classify_stock(current_stock: int, minimum_stock: int) -> str:
    """
    Stock status is derived, never stored.

    - 0                              -> out_of_stock
    - 0 < current <= minimum         -> low_stock
    - current > minimum              -> in_stock
    """
    if current_stock <= 0:
        return STOCK_OUT
    if current_stock <= minimum_stock:
        return STOCK_LOW
    return STOCK_IN


class InventoryItem(db.Model):
    """
    Stock row for a product at a location.

    UNIQUENESS: one row per product_id (not per product + location). The
    location is an attribute of the row, not part of its identity.

    current_stock is a mutable absolute quantity. Physical stock events must go
    through inventory_service.adjust_stock(), which records a StockAdjustment
    with a reason. version_id is the optimistic lock counter used to serialize
    concurrent adjustments on the same SKU.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_current_stock_nonneg"),
        db.CheckConstraint("minimum_stock >= 0", name="ck_inventory_minimum_stock_nonneg"),
        db.CheckConstraint("cost_price >= 0", name="ck_inventory_cost_price_nonneg"),
        db.CheckConstraint("selling_price >= 0", name="ck_inventory_selling_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # External handle used for stock adjustments
    sku = db.Column(db.String(64), nullable=False, unique=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    location = db.Column(db.String(32), nullable=False, default="main_warehouse")

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=10)

    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    selling_price = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    color = db.Column(db.String(64), nullable=True)
    shade = db.Column(db.String(64), nullable=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    supplier_contact = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_item", uselist=False, lazy=True))
    adjustments = db.relationship(
        "StockAdjustment",
        backref="inventory_item",
        order_by="StockAdjustment.id.desc()",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def stock_status(self) -> str:
        return classify_stock(self.current_stock or 0, self.minimum_stock or 0)

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        product = self.product
        status = self.stock_status
        return {
            "id": self.id,
            "sku": self.sku,
            "product_id": self.product_id,
            "name": product.name if product else None,
            "brand": product.brand.to_ref() if product and product.brand else None,
            "category": product.category.to_ref() if product and product.category else None,
            "location": self.location,
            "current_stock": self.current_stock,
            "minimum_stock": self.minimum_stock,
            "stock_status": status,
            "is_low_stock": status == STOCK_LOW,
            "is_out_of_stock": status == STOCK_OUT,
            "cost_price": money_json(self.cost_price),
            "selling_price": money_json(self.selling_price),
            "color": self.color,
            "shade": self.shade,
            "supplier_name": self.supplier_name,
            "supplier_contact": self.supplier_contact,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Append-only audit row written by every adjust_stock() call, including
    repeats that leave the quantity unchanged.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_sku_adjusted", "sku", "adjusted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Nulled when the inventory row is deleted; sku keeps the history addressable
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True, index=True)
    sku = db.Column(db.String(64), nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    # Set when the adjustment was triggered by an order confirmation
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    adjusted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "sku": self.sku,
            "previous_stock": self.previous_stock,
            "new_quantity": self.new_quantity,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "order_id": self.order_id,
            "adjusted_at": to_utc_z(self.adjusted_at),
        }
