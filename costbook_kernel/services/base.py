"""
BaseService -- abstract base for all costbook kernel services.

Responsibility:
    Common constructor and session contract for every write service.
    Services receive a SQLAlchemy ``Session`` and use ``session.flush()``,
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back.  CostbookService (or a
      test) owns the transaction, which is what makes an order cascade or
      a build all-or-nothing.
    - Ownership: every load goes through ``_get_owned``, which filters on
      (id, user_id), so another user's row looks exactly like a missing one.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from costbook_kernel.db.base import OwnedBase
from costbook_kernel.domain.clock import Clock, SystemClock
from costbook_kernel.domain.policy import DEFAULT_STOCK_POLICY, StockPolicy
from costbook_kernel.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=OwnedBase)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Does NOT provide read-model queries; those live in selectors/.
    """

    def __init__(
        self,
        session: Session,
        policy: StockPolicy | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self.policy = policy or DEFAULT_STOCK_POLICY
        self.clock = clock or SystemClock()

    def _get_owned(
        self,
        model: type[ModelType],
        user_id: UUID,
        entity_id: UUID,
        not_found: type[NotFoundError],
        *,
        for_update: bool = False,
    ) -> ModelType:
        """
        Load one row owned by ``user_id``.

        Raises:
            not_found: no such row for this user.
        """
        stmt = select(model).where(model.id == entity_id, model.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise not_found(str(entity_id))
        return row
