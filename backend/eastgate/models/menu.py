from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class MenuItem(db.Model):
    """
    Menu catalog entry (read-mostly reference data).

    Orders never hold a live reference to price or name: both are copied onto
    the order line at creation time, so later catalog edits cannot change
    historical totals.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_menu_items_branch_name"),
        db.Index("ix_menu_items_branch_category", "branch_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in minor units (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)

    available = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Dietary flags
    is_vegetarian = db.Column(db.Boolean, nullable=False, default=False)
    is_vegan = db.Column(db.Boolean, nullable=False, default=False)
    is_gluten_free = db.Column(db.Boolean, nullable=False, default=False)
    is_spicy = db.Column(db.Boolean, nullable=False, default=False)

    prep_time_minutes = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("menu_items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<MenuItem id={self.id} name={self.name!r} branch_id={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "available": self.available,
            "dietary": {
                "vegetarian": self.is_vegetarian,
                "vegan": self.is_vegan,
                "gluten_free": self.is_gluten_free,
                "spicy": self.is_spicy,
            },
            "prep_time_minutes": self.prep_time_minutes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RecipeComponent(db.Model):
    """Ingredient mapping: one portion of menu_item consumes quantity of stock_item."""
    __tablename__ = "recipe_components"
    __table_args__ = (
        db.UniqueConstraint("menu_item_id", "stock_item_id", name="uq_recipe_menu_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)
    stock_item_id = db.Column(db.Integer, db.ForeignKey("stock_items.id"), nullable=False, index=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)

    menu_item = db.relationship("MenuItem", backref=db.backref("recipe", lazy=True, cascade="all, delete-orphan"))
    stock_item = db.relationship("StockItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "stock_item_id": self.stock_item_id,
            "quantity": str(self.quantity),
        }
