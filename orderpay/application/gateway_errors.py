"""Traducción de errores de MercadoPago a la taxonomía interna.

La tabla se recorre en orden; gana la primera entrada cuyo texto aparezca en
el mensaje de la pasarela.
"""
import logging
from types import MappingProxyType
from typing import Optional

from orderpay.domain.exceptions import (
    ConflictError, DomainException, GatewayRejectionError, NotFoundError, RejectionReason
)

logger = logging.getLogger(__name__)


REJECTION_MESSAGES = MappingProxyType({
    RejectionReason.INSUFFICIENT_FUNDS: "Tarjeta rechazada por fondos insuficientes.",
    RejectionReason.BAD_SECURITY_CODE: "Código de seguridad de la tarjeta inválido.",
    RejectionReason.BAD_EXPIRATION: "Fecha de vencimiento de la tarjeta inválida.",
    RejectionReason.BAD_CARD_NUMBER: "Número de tarjeta inválido.",
    RejectionReason.CARD_DISABLED: "Tarjeta deshabilitada. Contacte a su banco emisor.",
    RejectionReason.DUPLICATE_PAYMENT: (
        "Ya se procesó un pago con esta información. Use otra tarjeta si necesita realizar otro pago."
    ),
    RejectionReason.HIGH_RISK: "Pago rechazado por políticas de seguridad. Intente con otro método de pago.",
    RejectionReason.INVALID_TOKEN: "Token de tarjeta inválido o expirado. Vuelva a ingresar los datos de la tarjeta.",
    RejectionReason.INVALID_PAYMENT_METHOD: (
        "Método de pago no válido. Use tarjetas de crédito o débito."
    ),
    RejectionReason.OTHER: "Error al procesar el pago",
})

REJECTION_RULES = (
    (("cc_rejected_insufficient_amount",), RejectionReason.INSUFFICIENT_FUNDS),
    (("cc_rejected_bad_filled_security_code",), RejectionReason.BAD_SECURITY_CODE),
    (("cc_rejected_bad_filled_date", "3029", "3030"), RejectionReason.BAD_EXPIRATION),
    (("cc_rejected_bad_filled_card_number", "3016"), RejectionReason.BAD_CARD_NUMBER),
    (("cc_rejected_card_disabled",), RejectionReason.CARD_DISABLED),
    (("cc_rejected_duplicated_payment",), RejectionReason.DUPLICATE_PAYMENT),
    (("cc_rejected_high_risk",), RejectionReason.HIGH_RISK),
    (("invalid_token", "4000"), RejectionReason.INVALID_TOKEN),
    (("invalid_payment_method", "3028"), RejectionReason.INVALID_PAYMENT_METHOD),
)

STATE_RULES = (
    ("not found", NotFoundError, "Recurso no encontrado en MercadoPago"),
    ("not valid", ConflictError, "La operación no es válida para el estado actual del pago"),
    ("too old", ConflictError, "El pago es demasiado antiguo para esta operación"),
)


def rejection_for(raw: Optional[str]) -> GatewayRejectionError:
    text = raw or ""
    for needles, reason in REJECTION_RULES:
        if any(needle in text for needle in needles):
            return GatewayRejectionError(reason, REJECTION_MESSAGES[reason])
    logger.warning(f"Rechazo de la pasarela sin traducción: {text}")
    return GatewayRejectionError(RejectionReason.OTHER, REJECTION_MESSAGES[RejectionReason.OTHER])


def translate_gateway_error(raw: Optional[str]) -> DomainException:
    text = raw or ""
    for needles, reason in REJECTION_RULES:
        if any(needle in text for needle in needles):
            return GatewayRejectionError(reason, REJECTION_MESSAGES[reason])
    lowered = text.lower()
    for needle, exc_class, message in STATE_RULES:
        if needle in lowered:
            return exc_class(message)
    logger.error(f"Error de la pasarela sin traducción: {text}")
    return GatewayRejectionError(RejectionReason.OTHER, REJECTION_MESSAGES[RejectionReason.OTHER])
