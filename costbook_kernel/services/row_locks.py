"""
Row locks on Material and Product rows.

Every operation that changes stock or ledger totals takes SELECT ... FOR
UPDATE on the rows it touches before reading them.  Locks are taken one
row at a time in ascending id order, and materials are always locked before
products, so two operations touching overlapping rows can never deadlock
on each other.

Re-locking a row already held by the current transaction is a no-op on
PostgreSQL, so callers may lock a superset up front (an order cascade) and
let the inner steps lock again.  On SQLite FOR UPDATE is not rendered and
the single-writer database lock serializes instead.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from costbook_kernel.exceptions import MaterialNotFoundError, ProductNotFoundError
from costbook_kernel.logging_config import get_logger
from costbook_kernel.models.material import Material
from costbook_kernel.models.product import Product

logger = get_logger("services.row_locks")


def lock_order(ids: Iterable[UUID]) -> list[UUID]:
    """Distinct ids in the order locks must be acquired."""
    return sorted(set(ids), key=str)


def _lock(session: Session, model, user_id: UUID, entity_id: UUID):
    stmt = (
        select(model)
        .where(model.id == entity_id, model.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.execute(stmt).scalar_one_or_none()


def lock_materials(
    session: Session,
    user_id: UUID,
    material_ids: Iterable[UUID],
    *,
    required: bool = True,
) -> dict[UUID, Material]:
    """
    Lock materials in ascending id order.

    With ``required=False`` missing materials are simply absent from the
    result; otherwise the first missing id raises MaterialNotFoundError.
    """
    locked: dict[UUID, Material] = {}
    for material_id in lock_order(material_ids):
        material = _lock(session, Material, user_id, material_id)
        if material is None:
            if required:
                raise MaterialNotFoundError(str(material_id))
            continue
        locked[material_id] = material
    if locked:
        logger.debug("materials_locked", extra={"count": len(locked)})
    return locked


def lock_products(
    session: Session,
    user_id: UUID,
    product_ids: Iterable[UUID],
    *,
    required: bool = True,
) -> dict[UUID, Product]:
    """Lock products in ascending id order.  See lock_materials."""
    locked: dict[UUID, Product] = {}
    for product_id in lock_order(product_ids):
        product = _lock(session, Product, user_id, product_id)
        if product is None:
            if required:
                raise ProductNotFoundError(str(product_id))
            continue
        locked[product_id] = product
    if locked:
        logger.debug("products_locked", extra={"count": len(locked)})
    return locked
