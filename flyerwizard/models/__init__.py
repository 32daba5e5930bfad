"""
models/__init__.py — imports all ORM models so Alembic's env.py
sees them via Base.metadata when generating migrations.

Import order follows FK dependencies: stores → flyers → products → lists → items → snapshots.
"""
from flyerwizard.models.store import StoreORM
from flyerwizard.models.flyer import FlyerORM
from flyerwizard.models.product import ProductORM
from flyerwizard.models.shopping_list import ShoppingListItemORM, ShoppingListORM
from flyerwizard.models.offer_snapshot import OfferSnapshotORM
from flyerwizard.models.user_store_preference import UserStorePreferenceORM

__all__ = [
    "StoreORM",
    "FlyerORM",
    "ProductORM",
    "ShoppingListORM",
    "ShoppingListItemORM",
    "OfferSnapshotORM",
    "UserStorePreferenceORM",
]
