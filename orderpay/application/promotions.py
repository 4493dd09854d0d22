import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from orderpay.domain.models import Promotion, PromotionKind, as_utc, money
from orderpay.domain.exceptions import (
    PromotionNotFoundError, PromotionRejectedError, PromotionRejection
)

logger = logging.getLogger(__name__)


class PromotionEvaluator:
    """Valida códigos promocionales y calcula el descuento que producen.

    El orden de las verificaciones es fijo: existencia, activa, inicio de
    vigencia, fin de vigencia, límite de usos y monto mínimo.
    """

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def validate(self, promotions, code: str, purchase_amount: Decimal) -> Promotion:
        promotion = await promotions.get_by_code(code)
        if not promotion:
            raise PromotionNotFoundError(f"Código promocional {code} no encontrado")
        self.check(promotion, purchase_amount)
        return promotion

    def check(self, promotion: Promotion, purchase_amount: Decimal) -> None:
        now = self._clock()
        if not promotion.active:
            raise PromotionRejectedError(
                PromotionRejection.INACTIVE, f"La promoción {promotion.code} no está activa"
            )
        if now < as_utc(promotion.starts_at):
            raise PromotionRejectedError(
                PromotionRejection.NOT_YET_VALID, f"La promoción {promotion.code} aún no está vigente"
            )
        if now > as_utc(promotion.ends_at):
            raise PromotionRejectedError(
                PromotionRejection.EXPIRED, f"La promoción {promotion.code} ha expirado"
            )
        if promotion.usage_cap is not None and promotion.usage_count >= promotion.usage_cap:
            raise PromotionRejectedError(
                PromotionRejection.USAGE_EXCEEDED, f"La promoción {promotion.code} alcanzó su límite de usos"
            )
        if promotion.minimum_amount is not None and purchase_amount < promotion.minimum_amount:
            raise PromotionRejectedError(
                PromotionRejection.BELOW_MINIMUM,
                f"El monto mínimo para la promoción {promotion.code} es {promotion.minimum_amount}"
            )

    @staticmethod
    def compute_discount(promotion: Promotion, subtotal: Decimal) -> Decimal:
        if promotion.kind == PromotionKind.PERCENTAGE:
            discount = subtotal * promotion.value / Decimal(100)
        elif promotion.kind == PromotionKind.FIXED_AMOUNT:
            discount = min(promotion.value, subtotal)
        else:
            # FREE_SHIPPING se aplica sobre el envío; FREE_PRODUCT no altera montos
            discount = Decimal("0")
        return min(max(money(discount), Decimal("0")), subtotal)


class ValidatePromotionUseCase:
    def __init__(self, unit_of_work, evaluator: Optional[PromotionEvaluator] = None):
        self._uow = unit_of_work
        self._evaluator = evaluator or PromotionEvaluator()

    async def __call__(self, code: str, purchase_amount: Decimal) -> Tuple[Promotion, Decimal]:
        async with self._uow() as uow:
            promotion = await self._evaluator.validate(uow.promotions, code, purchase_amount)
        discount = self._evaluator.compute_discount(promotion, purchase_amount)
        logger.info(f"Promoción {code} válida para {purchase_amount}: descuento {discount}")
        return promotion, discount
