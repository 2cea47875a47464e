"""
Module: costbook_kernel.selectors.sale
Responsibility: Sales with their items.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from costbook_kernel.domain.dtos import SaleSnapshot
from costbook_kernel.exceptions import SaleNotFoundError
from costbook_kernel.models.sale import Sale, SaleStatus
from costbook_kernel.selectors.base import BaseSelector


class SaleSelector(BaseSelector):

    def get(self, user_id: UUID, sale_id: UUID) -> SaleSnapshot:
        sale = self.session.execute(
            select(Sale)
            .options(selectinload(Sale.items))
            .where(Sale.id == sale_id, Sale.user_id == user_id)
        ).scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        return sale.to_dto()

    def list_sales(
        self,
        user_id: UUID,
        status: SaleStatus | str | None = None,
    ) -> list[SaleSnapshot]:
        stmt = (
            select(Sale)
            .options(selectinload(Sale.items))
            .where(Sale.user_id == user_id)
        )
        if status is not None:
            stmt = stmt.where(Sale.status == SaleStatus(status))
        stmt = stmt.order_by(Sale.sale_date.desc(), Sale.id)
        return [s.to_dto() for s in self.session.execute(stmt).scalars()]
