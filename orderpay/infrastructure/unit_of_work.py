from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderpay.infrastructure.repositories import (
    SQLAlchemyAddressRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyPaymentRepository,
    SQLAlchemyProductRepository,
    SQLAlchemyPromotionRepository,
    SQLAlchemyUserRepository,
    SQLAlchemyWebhookEventRepository
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                uow_impl = _UnitOfWorkImpl(session)
                yield uow_impl
                # Sin commit explícito no queda nada escrito
                await session.rollback()
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.products = SQLAlchemyProductRepository(session)
        self.users = SQLAlchemyUserRepository(session)
        self.addresses = SQLAlchemyAddressRepository(session)
        self.promotions = SQLAlchemyPromotionRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)
        self.payments = SQLAlchemyPaymentRepository(session)
        self.webhook_events = SQLAlchemyWebhookEventRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
