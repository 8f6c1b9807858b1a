"""Repositories (gateways) for orders, products, promo codes and history."""

from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from order_engine.models.enums import OrderStatus

from .models import (
    Order,
    OrderItem,
    OrderStatusHistory,
    Product,
    PromoCode,
    PromoCodeExclusion,
    UserPromoCode,
    utcnow,
)


class ProductRepository:
    """Data access layer for Product model."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with async session."""
        self.session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def find_many(self, product_ids: Iterable[str], refresh: bool = False) -> List[Product]:
        """
        Get products by id.

        Args:
            product_ids: Ids to look up (duplicates are fine)
            refresh: Overwrite already-loaded instances with the row values

        Returns:
            Products found, in no particular order
        """
        ids = list(set(product_ids))
        if not ids:
            return []
        query = select(Product).where(Product.id.in_(ids))
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_for_update(self, product_id: str) -> Optional[Product]:
        """Re-read a product row, locking it where the dialect supports it."""
        query = (
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def decrement_stock(self, product_id: str, amount: int) -> bool:
        """
        Decrement stock only if enough is left.

        Returns:
            True if the row was updated, False on shortfall
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= amount)
            .values(stock=Product.stock - amount)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self._reload(product_id)
        return True

    async def increment_stock(self, product_id: str, amount: int) -> None:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + amount)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self._reload(product_id)

    async def _reload(self, product_id: str) -> None:
        query = select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        await self.session.execute(query)


class PromoCodeRepository:
    """Data access layer for promo codes and their per-user rules."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with async session."""
        self.session = session

    async def find_by_code(self, code: str) -> Optional[PromoCode]:
        query = (
            select(PromoCode)
            .where(PromoCode.code == code)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_id(self, promo_code_id: str) -> Optional[PromoCode]:
        query = (
            select(PromoCode)
            .where(PromoCode.id == promo_code_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def increment_usage(self, promo_code_id: str) -> None:
        stmt = (
            update(PromoCode)
            .where(PromoCode.id == promo_code_id)
            .values(used_count=PromoCode.used_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def decrement_usage(self, promo_code_id: str) -> None:
        stmt = (
            update(PromoCode)
            .where(PromoCode.id == promo_code_id, PromoCode.used_count > 0)
            .values(used_count=PromoCode.used_count - 1)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def find_user_assignment(
        self, user_id: str, promo_code_id: str
    ) -> Optional[UserPromoCode]:
        query = select(UserPromoCode).where(
            UserPromoCode.user_id == user_id,
            UserPromoCode.promo_code_id == promo_code_id,
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def mark_assignment_used(self, assignment: UserPromoCode) -> None:
        """Stamp an assignment as used. Already-used assignments keep their stamp."""
        if assignment.used_at is None:
            assignment.used_at = utcnow()
            await self.session.flush()

    async def clear_assignment_used(self, assignment: UserPromoCode) -> None:
        assignment.used_at = None
        await self.session.flush()

    async def has_exclusive_assignment_for_others(self, promo_code_id: str, user_id: str) -> bool:
        query = select(func.count(UserPromoCode.id)).where(
            UserPromoCode.promo_code_id == promo_code_id,
            UserPromoCode.is_exclusive.is_(True),
            UserPromoCode.user_id != user_id,
        )
        result = await self.session.execute(query)
        return result.scalar_one() > 0

    async def is_user_excluded(self, promo_code_id: str, user_id: str) -> bool:
        query = select(func.count(PromoCodeExclusion.id)).where(
            PromoCodeExclusion.promo_code_id == promo_code_id,
            PromoCodeExclusion.user_id == user_id,
        )
        result = await self.session.execute(query)
        return result.scalar_one() > 0


class OrderRepository:
    """Data access layer for Order and OrderItem models."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with async session."""
        self.session = session

    async def get_with_items(
        self, order_id: str, refresh: bool = False, for_update: bool = False
    ) -> Optional[Order]:
        """
        Load an order together with its items and their products.

        Args:
            order_id: Order identifier
            refresh: Reload even if the order is already in the session
            for_update: Lock the order row until the transaction ends

        Returns:
            The order, or None if it does not exist
        """
        query = (
            select(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .where(Order.id == order_id)
        )
        if for_update:
            query = query.with_for_update(of=Order)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_user(
        self, user_id: str, status: Optional[OrderStatus] = None
    ) -> List[Order]:
        query = select(Order).where(Order.user_id == user_id)
        if status is not None:
            query = query.where(Order.status == status)
        query = query.order_by(Order.created_at.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    def add(self, order: Order) -> Order:
        self.session.add(order)
        return order


class StatusHistoryRepository:
    """Append-only history sink."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with async session."""
        self.session = session

    async def append(
        self,
        order_id: str,
        previous_status: OrderStatus,
        new_status: OrderStatus,
        note: Optional[str],
        actor_id: str,
    ) -> OrderStatusHistory:
        entry = OrderStatusHistory(
            order_id=order_id,
            previous_status=previous_status,
            new_status=new_status,
            note=note,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_for_order(self, order_id: str) -> List[OrderStatusHistory]:
        query = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
