"""Unit of work: one session, one transaction, all gateways."""

from order_engine.core.logger import setup_logger

from .repository import (
    OrderRepository,
    ProductRepository,
    PromoCodeRepository,
    StatusHistoryRepository,
)

logger = setup_logger(__name__)


class UnitOfWork:
    """
    Transaction handle passed to every operation that must be atomic.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            product = await uow.products.get_for_update(product_id)
            ...
            await uow.commit()

    An exception rolls back. Leaving the block without commit() discards the
    transaction when the session closes; objects loaded in it stay readable.
    """

    def __init__(self, session_factory):
        """Initialize with an async session factory."""
        self._session_factory = session_factory
        self.session = None

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        self.products = ProductRepository(self.session)
        self.promo_codes = PromoCodeRepository(self.session)
        self.orders = OrderRepository(self.session)
        self.history = StatusHistoryRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                logger.debug(f"Rolling back unit of work after {exc_type.__name__}")
                await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
