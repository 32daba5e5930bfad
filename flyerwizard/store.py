"""
store.py — Data access facade for flyerwizard.

Provides a consistent, high-level API for reading and writing shopping lists, flyer offers
and offer snapshots. The wizard service and commit workflow use these functions; neither
touches SQLAlchemy queries directly.

Design principles:
  - All functions are async and accept an AsyncSession parameter
  - No raw SQL: ORM-only queries
  - Logs only ids and counts, never item descriptions
  - Writes use flush(), never commit(): the caller owns the transaction
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerwizard.models.flyer import FlyerORM
from flyerwizard.models.offer_snapshot import SNAPSHOT_REASON_WIZARD_MIGRATION, OfferSnapshotORM
from flyerwizard.models.product import ProductORM
from flyerwizard.models.shopping_list import ORIGIN_FLYER, ShoppingListItemORM, ShoppingListORM
from flyerwizard.models.store import StoreORM
from flyerwizard.models.user_store_preference import UserStorePreferenceORM
from flyerwizard.time_utils import as_utc
from flyerwizard.wizard.schemas import StoreInfo, WizardItem
from flyerwizard.wizard.units import normalize_unit, parse_unit_size

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shopping list operations
# ---------------------------------------------------------------------------

async def get_shopping_list(
    db: AsyncSession,
    shopping_list_id: int,
) -> Optional[ShoppingListORM]:
    """Returns None if no list found (caller raises 404)."""
    result = await db.execute(
        select(ShoppingListORM).where(ShoppingListORM.id == shopping_list_id)
    )
    return result.scalar_one_or_none()


async def get_shopping_list_for_update(
    db: AsyncSession,
    shopping_list_id: int,
) -> Optional[ShoppingListORM]:
    """
    Row-locked read (SELECT ... FOR UPDATE) for the confirm transaction.
    populate_existing refreshes an instance already held by this session.
    """
    result = await db.execute(
        select(ShoppingListORM)
        .where(ShoppingListORM.id == shopping_list_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def set_list_locked(
    db: AsyncSession,
    shopping_list_id: int,
    locked: bool,
) -> None:
    """
    Raise or clear the wizard lock flag on a shopping list.
    A missing list is ignored: cancelling after the list was deleted must still succeed.
    """
    shopping_list = await get_shopping_list(db, shopping_list_id)
    if shopping_list is None:
        logger.warning("Cannot set lock, shopping list missing list_id=%s", shopping_list_id)
        return
    shopping_list.is_locked = locked
    await db.flush()
    logger.info("Shopping list lock list_id=%s locked=%s", shopping_list_id, locked)


async def get_expired_items(
    db: AsyncSession,
    shopping_list_id: int,
    now: datetime,
) -> list[WizardItem]:
    """
    Flyer-sourced items of a list whose linked offer has ended (valid_to < now),
    ordered by item id, converted to WizardItem snapshots without suggestions.

    The item's display name is its own description; brand, price, expiry and size come
    from the expired offer.
    """
    result = await db.execute(
        select(ShoppingListItemORM, ProductORM, StoreORM)
        .join(ProductORM, ProductORM.id == ShoppingListItemORM.linked_product_id)
        .join(StoreORM, StoreORM.id == ProductORM.store_id)
        .where(ShoppingListItemORM.shopping_list_id == shopping_list_id)
        .where(ShoppingListItemORM.origin == ORIGIN_FLYER)
        .where(ProductORM.valid_to < now)
        .order_by(ShoppingListItemORM.id.asc())
    )

    items = []
    for item, product, store in result.all():
        _, size_unit = parse_unit_size(product.unit_size)
        items.append(
            WizardItem(
                item_id=item.id,
                product_name=item.description,
                brand=product.brand,
                original_price=product.current_price,
                quantity=item.quantity,
                expiry_date=as_utc(product.valid_to),
                original_store=StoreInfo(store_id=store.id, store_name=store.name),
                unit=size_unit or normalize_unit(product.unit_type),
            )
        )
    logger.info("Expired items list_id=%s count=%d", shopping_list_id, len(items))
    return items


async def get_preferred_store_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(
        select(UserStorePreferenceORM.store_id).where(UserStorePreferenceORM.user_id == user_id)
    )
    return set(result.scalars().all())


async def get_item(db: AsyncSession, item_id: int) -> Optional[ShoppingListItemORM]:
    result = await db.execute(
        select(ShoppingListItemORM).where(ShoppingListItemORM.id == item_id)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Offer lookups (confirm-time revalidation)
# ---------------------------------------------------------------------------

async def get_product(db: AsyncSession, product_id: int) -> Optional[ProductORM]:
    result = await db.execute(select(ProductORM).where(ProductORM.id == product_id))
    return result.scalar_one_or_none()


async def get_flyer(db: AsyncSession, flyer_id: int) -> Optional[FlyerORM]:
    result = await db.execute(select(FlyerORM).where(FlyerORM.id == flyer_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Commit-time writes
# ---------------------------------------------------------------------------

async def create_offer_snapshot(
    db: AsyncSession,
    item_id: int,
    product: ProductORM,
) -> int:
    """
    Insert an immutable audit record of the offer an item is being migrated to.
    Product fields are copied from the current offer row. Returns the snapshot id.
    """
    size_value, size_unit = parse_unit_size(product.unit_size)
    orm = OfferSnapshotORM(
        shopping_list_item_id=item_id,
        flyer_product_id=product.id,
        product_master_id=product.product_master_id,
        store_id=product.store_id,
        product_name=product.name,
        brand=product.brand,
        price=product.current_price,
        unit=product.unit_type,
        size_value=size_value,
        size_unit=size_unit,
        valid_from=product.valid_from,
        valid_to=product.valid_to,
        estimated=False,
        snapshot_reason=SNAPSHOT_REASON_WIZARD_MIGRATION,
    )
    db.add(orm)
    await db.flush()
    logger.info("Saved offer snapshot snapshot_id=%s item_id=%s product_id=%s", orm.id, item_id, product.id)
    return orm.id


async def apply_replacement(
    db: AsyncSession,
    item: ShoppingListItemORM,
    product: ProductORM,
    now: datetime,
) -> None:
    """Re-point a shopping list item at a new offer."""
    item.linked_product_id = product.id
    item.product_master_id = product.product_master_id
    item.store_id = product.store_id
    item.flyer_id = product.flyer_id
    item.estimated_price = product.current_price
    item.origin = ORIGIN_FLYER
    item.availability_status = "available"
    item.availability_checked_at = now
    item.updated_at = now
    await db.flush()
    logger.info("Replaced item offer item_id=%s product_id=%s", item.id, product.id)


async def delete_item(db: AsyncSession, item: ShoppingListItemORM) -> None:
    await db.delete(item)
    await db.flush()
    logger.info("Deleted shopping list item item_id=%s", item.id)
