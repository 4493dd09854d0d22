from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete, or_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderpay.domain.models import (
    Order, OrderLine, OrderStatus, Payment, PaymentMethod, PaymentStatus, Product,
    Promotion, PromotionKind, ShippingMethod, User
)
from orderpay.infrastructure.db_schema import (
    addresses_tbl, order_lines_tbl, order_sequences_tbl, orders_tbl, payments_tbl,
    products_tbl, promotions_tbl, users_tbl, webhook_events_tbl
)
from orderpay.application.interfaces import (
    AddressRepository, OrderRepository, PaymentRepository, ProductRepository,
    PromotionRepository, UserRepository, WebhookEventRepository
)


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return Product(id=row.id, name=row.name, sku=row.sku, unit_price=row.unit_price, stock=row.stock)

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id, products_tbl.c.stock >= quantity)
            .values(stock=products_tbl.c.stock - quantity)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def restore_stock(self, product_id: str, quantity: int) -> None:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(stock=products_tbl.c.stock + quantity)
        )
        await self._session.execute(stmt)


class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self._session.execute(
            select(users_tbl).where(users_tbl.c.id == user_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return User(
            id=row.id,
            first_name=row.first_name,
            last_name=row.last_name,
            email=row.email,
            phone=row.phone
        )


class SQLAlchemyAddressRepository(AddressRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def belongs_to(self, address_id: str, user_id: str) -> bool:
        result = await self._session.execute(
            select(addresses_tbl.c.id).where(
                addresses_tbl.c.id == address_id,
                addresses_tbl.c.user_id == user_id
            )
        )
        return result.fetchone() is not None


class SQLAlchemyPromotionRepository(PromotionRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_code(self, code: str) -> Optional[Promotion]:
        result = await self._session.execute(
            select(promotions_tbl).where(promotions_tbl.c.code == code)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def increment_usage(self, promotion_id: str) -> bool:
        """Incremento condicional: falla si ya se alcanzó el límite"""
        stmt = (
            update(promotions_tbl)
            .where(
                promotions_tbl.c.id == promotion_id,
                or_(
                    promotions_tbl.c.usage_cap.is_(None),
                    promotions_tbl.c.usage_count < promotions_tbl.c.usage_cap
                )
            )
            .values(usage_count=promotions_tbl.c.usage_count + 1)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Promotion:
        return Promotion(
            id=row.id,
            code=row.code,
            name=row.name,
            kind=PromotionKind(row.kind),
            value=row.value,
            minimum_amount=row.minimum_amount,
            active=row.active,
            starts_at=row.starts_at,
            ends_at=row.ends_at,
            usage_cap=row.usage_cap,
            usage_count=row.usage_count
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return await self._to_domain(row) if row else None

    async def get_by_number(self, number: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.number == number)
        )
        row = result.fetchone()
        return await self._to_domain(row) if row else None

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            number=order.number,
            user_id=order.user_id,
            address_id=order.address_id,
            subtotal=order.subtotal,
            shipping_amount=order.shipping_amount,
            discount_amount=order.discount_amount,
            total=order.total,
            promotion_code=order.promotion_code,
            payment_method=order.payment_method,
            shipping_method=order.shipping_method,
            status=order.status,
            customer_notes=order.customer_notes,
            internal_notes=order.internal_notes,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        await self._session.execute(stmt)

        if order.lines:
            await self._session.execute(
                insert(order_lines_tbl),
                [
                    {
                        "id": line.id,
                        "order_id": order.id,
                        "product_id": line.product_id,
                        "quantity": line.quantity,
                        "unit_price": line.unit_price,
                        "subtotal": line.subtotal
                    }
                    for line in order.lines
                ]
            )

    async def update_status(self, order_id: str, status: OrderStatus, internal_notes: Optional[str] = None) -> None:
        values = {"status": status, "updated_at": datetime.now(timezone.utc)}
        if internal_notes is not None:
            values["internal_notes"] = internal_notes
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id)
            .values(**values)
        )
        await self._session.execute(stmt)

    async def next_sequence(self, year: int) -> int:
        """Incrementa y lee el contador del año en una sola sentencia (upsert)"""
        dialect = self._session.get_bind().dialect.name
        upsert = postgresql_insert if dialect == "postgresql" else sqlite_insert
        stmt = upsert(order_sequences_tbl).values(year=year, last_value=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[order_sequences_tbl.c.year],
            set_={"last_value": order_sequences_tbl.c.last_value + 1}
        ).returning(order_sequences_tbl.c.last_value)
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def _to_domain(self, row) -> Order:
        """Transformación DB → Domain"""
        result = await self._session.execute(
            select(order_lines_tbl).where(order_lines_tbl.c.order_id == row.id)
        )
        lines = [
            OrderLine(
                id=line.id,
                order_id=line.order_id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal
            )
            for line in result.fetchall()
        ]
        return Order(
            id=row.id,
            number=row.number,
            user_id=row.user_id,
            address_id=row.address_id,
            subtotal=row.subtotal,
            shipping_amount=row.shipping_amount,
            discount_amount=row.discount_amount,
            total=row.total,
            promotion_code=row.promotion_code,
            payment_method=PaymentMethod(row.payment_method),
            shipping_method=ShippingMethod(row.shipping_method),
            status=OrderStatus(row.status),
            customer_notes=row.customer_notes,
            internal_notes=row.internal_notes,
            lines=lines,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyPaymentRepository(PaymentRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        result = await self._session.execute(
            select(payments_tbl).where(payments_tbl.c.id == payment_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_gateway_id(self, gateway_id: str) -> Optional[Payment]:
        result = await self._session.execute(
            select(payments_tbl).where(payments_tbl.c.gateway_id == gateway_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_for_order(self, order_id: str) -> List[Payment]:
        result = await self._session.execute(
            select(payments_tbl)
            .where(payments_tbl.c.order_id == order_id)
            .order_by(payments_tbl.c.created_at.asc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, payment: Payment) -> None:
        stmt = insert(payments_tbl).values(
            id=payment.id,
            order_id=payment.order_id,
            amount=payment.amount,
            status=payment.status,
            gateway_id=payment.gateway_id,
            method_id=payment.method_id,
            card_last_four=payment.card_last_four,
            installments=payment.installments,
            status_detail=payment.status_detail,
            refunded_amount=payment.refunded_amount,
            paid_at=payment.paid_at,
            preference_id=payment.preference_id,
            init_point=payment.init_point,
            sandbox_init_point=payment.sandbox_init_point,
            created_at=payment.created_at,
            updated_at=payment.updated_at
        )
        await self._session.execute(stmt)

    async def reserve(self, payment: Payment) -> bool:
        """
        Inserta el pago solo si el pedido no tiene otro activo.
        El índice único parcial uq_payments_active_order decide entre escrituras concurrentes.
        """
        try:
            await self.create(payment)
        except IntegrityError:
            return False
        return True

    async def update(self, payment: Payment) -> None:
        stmt = (
            update(payments_tbl)
            .where(payments_tbl.c.id == payment.id)
            .values(
                status=payment.status,
                gateway_id=payment.gateway_id,
                method_id=payment.method_id,
                card_last_four=payment.card_last_four,
                installments=payment.installments,
                status_detail=payment.status_detail,
                refunded_amount=payment.refunded_amount,
                paid_at=payment.paid_at,
                preference_id=payment.preference_id,
                init_point=payment.init_point,
                sandbox_init_point=payment.sandbox_init_point,
                updated_at=datetime.now(timezone.utc)
            )
        )
        await self._session.execute(stmt)

    async def delete(self, payment_id: str) -> None:
        await self._session.execute(
            delete(payments_tbl).where(payments_tbl.c.id == payment_id)
        )

    def _to_domain(self, row) -> Payment:
        return Payment(
            id=row.id,
            order_id=row.order_id,
            amount=row.amount,
            status=PaymentStatus(row.status),
            gateway_id=row.gateway_id,
            method_id=row.method_id,
            card_last_four=row.card_last_four,
            installments=row.installments,
            status_detail=row.status_detail,
            refunded_amount=row.refunded_amount,
            paid_at=row.paid_at,
            preference_id=row.preference_id,
            init_point=row.init_point,
            sandbox_init_point=row.sandbox_init_point,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyWebhookEventRepository(WebhookEventRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def exists(self, event_id: str) -> bool:
        result = await self._session.execute(
            select(webhook_events_tbl.c.event_id).where(webhook_events_tbl.c.event_id == event_id)
        )
        return result.fetchone() is not None

    async def record(self, event_id: str, gateway_payment_id: str, event_type: str,
                     action: Optional[str], outcome: str) -> None:
        stmt = insert(webhook_events_tbl).values(
            event_id=event_id,
            gateway_payment_id=gateway_payment_id,
            event_type=event_type,
            action=action,
            outcome=outcome,
            processed_at=datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)
