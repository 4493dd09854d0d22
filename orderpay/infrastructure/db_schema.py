from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Boolean, Enum, DateTime, ForeignKey, Index, MetaData, Text, text
)
from sqlalchemy.sql import func

from orderpay.domain.models import (
    OrderStatus, PaymentMethod, PaymentStatus, PromotionKind, ShippingMethod
)

metadata = MetaData()

MONEY = Numeric(12, 2)


# Tablas de colaboradores (solo lectura, salvo products.stock)

products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("sku", String, nullable=True, unique=True),
    Column("unit_price", MONEY, nullable=False),
    Column("stock", Integer, nullable=False, default=0)
)


users_tbl = Table(
    "users",
    metadata,
    Column("id", String, primary_key=True),
    Column("first_name", String, nullable=False),
    Column("last_name", String, nullable=False),
    Column("email", String, nullable=False, unique=True),
    Column("phone", String, nullable=True)
)


addresses_tbl = Table(
    "addresses",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("line", String, nullable=False)
)


promotions_tbl = Table(
    "promotions",
    metadata,
    Column("id", String, primary_key=True),
    Column("code", String, nullable=False, unique=True, index=True),
    Column("name", String, nullable=False),
    Column("kind", Enum(PromotionKind), nullable=False),
    Column("value", MONEY, nullable=False),
    Column("minimum_amount", MONEY, nullable=True),
    Column("active", Boolean, nullable=False, default=True),
    Column("starts_at", DateTime(timezone=True), nullable=False),
    Column("ends_at", DateTime(timezone=True), nullable=False),
    Column("usage_cap", Integer, nullable=True),
    Column("usage_count", Integer, nullable=False, default=0)
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("number", String, nullable=False, unique=True, index=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("address_id", String, ForeignKey("addresses.id"), nullable=True),
    Column("subtotal", MONEY, nullable=False),
    Column("shipping_amount", MONEY, nullable=False),
    Column("discount_amount", MONEY, nullable=False),
    Column("total", MONEY, nullable=False),
    Column("promotion_code", String, nullable=True),
    Column("payment_method", Enum(PaymentMethod), nullable=False),
    Column("shipping_method", Enum(ShippingMethod), nullable=False),
    Column("status", Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING),
    Column("customer_notes", Text, nullable=True),
    Column("internal_notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


order_lines_tbl = Table(
    "order_lines",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", MONEY, nullable=False),
    Column("subtotal", MONEY, nullable=False)
)


order_sequences_tbl = Table(
    "order_sequences",
    metadata,
    Column("year", Integer, primary_key=True),
    Column("last_value", Integer, nullable=False, default=0)
)


payments_tbl = Table(
    "payments",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("amount", MONEY, nullable=False),
    Column("status", Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING),
    Column("gateway_id", String, nullable=True, unique=True, index=True),
    Column("method_id", String, nullable=True),
    Column("card_last_four", String(4), nullable=True),
    Column("installments", Integer, nullable=False, default=1),
    Column("status_detail", String, nullable=True),
    Column("refunded_amount", MONEY, nullable=False, default=0),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("preference_id", String, nullable=True),
    Column("init_point", String, nullable=True),
    Column("sandbox_init_point", String, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)

# Un solo pago activo por pedido
ACTIVE_PAYMENT_CONDITION = "status IN ('PENDING', 'PROCESSING', 'AUTHORIZED', 'COMPLETED')"

Index(
    "uq_payments_active_order",
    payments_tbl.c.order_id,
    unique=True,
    sqlite_where=text(ACTIVE_PAYMENT_CONDITION),
    postgresql_where=text(ACTIVE_PAYMENT_CONDITION)
)


webhook_events_tbl = Table(
    "webhook_events",
    metadata,
    Column("event_id", String, primary_key=True),
    Column("gateway_payment_id", String, nullable=False, index=True),
    Column("event_type", String, nullable=False),
    Column("action", String, nullable=True),
    Column("outcome", String, nullable=False),
    Column("processed_at", DateTime(timezone=True), server_default=func.now())
)
