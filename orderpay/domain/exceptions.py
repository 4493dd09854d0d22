from enum import Enum


class DomainException(Exception):
    pass


# Validation

class ValidationError(DomainException):
    pass


class InsufficientStockError(ValidationError):
    def __init__(self, product_id: str, available: int, required: int):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(
            f"Stock insuficiente para el producto {product_id}. Disponible: {available}, solicitado: {required}"
        )


class PromotionRejection(str, Enum):
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    USAGE_EXCEEDED = "USAGE_EXCEEDED"
    BELOW_MINIMUM = "BELOW_MINIMUM"


class PromotionRejectedError(ValidationError):
    def __init__(self, reason: PromotionRejection, message: str):
        self.reason = reason
        super().__init__(message)


class InvalidCardError(ValidationError):
    pass


# Not found

class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class PaymentNotFoundError(NotFoundError):
    pass


class PromotionNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class AddressNotFoundError(NotFoundError):
    pass


# Authorization / state

class AuthorizationError(DomainException):
    pass


class ConflictError(DomainException):
    pass


# Gateway

class RejectionReason(str, Enum):
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    BAD_SECURITY_CODE = "BAD_SECURITY_CODE"
    BAD_EXPIRATION = "BAD_EXPIRATION"
    BAD_CARD_NUMBER = "BAD_CARD_NUMBER"
    CARD_DISABLED = "CARD_DISABLED"
    HIGH_RISK = "HIGH_RISK"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_PAYMENT_METHOD = "INVALID_PAYMENT_METHOD"
    OTHER = "OTHER"


class GatewayRejectionError(DomainException):
    def __init__(self, reason: RejectionReason, message: str):
        self.reason = reason
        super().__init__(message)


class GatewayUnavailableError(DomainException):
    pass
