import hashlib
import hmac
import unittest
from decimal import Decimal

from orderpay.domain.models import PayerInfo, PaymentStatus
from orderpay.domain.exceptions import (
    ConflictError, GatewayRejectionError, NotFoundError, RejectionReason, ValidationError
)
from orderpay.domain.status_maps import is_forward, map_gateway_status
from orderpay.application.gateway import PaymentGateway, identification_type
from orderpay.application.gateway_errors import REJECTION_MESSAGES, rejection_for, translate_gateway_error
from orderpay.application.webhook_signature import parse_signature_header, verify_signature

from tests.fakes import FakeCustomers, FakeMeta, FakePayments, FakePreferences, FakeRefunds


class TestGatewayTables(unittest.TestCase):

    def test_identification_type(self):
        for number, expected in (("12345678", "DNI"), ("20123456789", "RUC"), (None, "DNI")):
            with self.subTest(number=number):
                self.assertEqual(identification_type(number), expected)

    def test_rejection_translation(self):
        cases = [
            ("cc_rejected_insufficient_amount", RejectionReason.INSUFFICIENT_FUNDS),
            ("Invalid card_expiration_year 3029", RejectionReason.BAD_EXPIRATION),
            ("cc_rejected_bad_filled_card_number", RejectionReason.BAD_CARD_NUMBER),
            ("3016 invalid card number", RejectionReason.BAD_CARD_NUMBER),
            ("cc_rejected_duplicated_payment", RejectionReason.DUPLICATE_PAYMENT),
            ("invalid_token", RejectionReason.INVALID_TOKEN),
            ("3028 invalid_payment_method", RejectionReason.INVALID_PAYMENT_METHOD),
            ("cc_rejected_blacklist", RejectionReason.OTHER),
        ]
        for raw, reason in cases:
            with self.subTest(raw=raw):
                error = rejection_for(raw)
                self.assertEqual(error.reason, reason)
                self.assertEqual(str(error), REJECTION_MESSAGES[reason])

    def test_first_matching_rule_wins(self):
        error = rejection_for("cc_rejected_insufficient_amount cc_rejected_high_risk")
        self.assertEqual(error.reason, RejectionReason.INSUFFICIENT_FUNDS)

    def test_gateway_error_translation(self):
        cases = [
            ("Payment not found", NotFoundError),
            ("Status is not valid for this operation", ConflictError),
            ("Payment too old to be refunded", ConflictError),
            ("something odd happened", GatewayRejectionError),
        ]
        for raw, exc_class in cases:
            with self.subTest(raw=raw):
                self.assertIsInstance(translate_gateway_error(raw), exc_class)

    def test_unknown_error_message_is_generic(self):
        self.assertEqual(str(translate_gateway_error("boom")), "Error al procesar el pago")

    def test_map_gateway_status(self):
        cases = [
            ("approved", PaymentStatus.COMPLETED),
            ("authorized", PaymentStatus.AUTHORIZED),
            ("in_process", PaymentStatus.PROCESSING),
            ("rejected", PaymentStatus.FAILED),
            ("charged_back", PaymentStatus.REFUNDED),
            ("something_new", PaymentStatus.PENDING),
        ]
        for status, expected in cases:
            with self.subTest(status=status):
                self.assertEqual(map_gateway_status(status), expected)

    def test_status_rank_is_monotonic(self):
        self.assertTrue(is_forward(PaymentStatus.PENDING, PaymentStatus.PROCESSING))
        self.assertTrue(is_forward(PaymentStatus.AUTHORIZED, PaymentStatus.COMPLETED))
        self.assertTrue(is_forward(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED))
        self.assertFalse(is_forward(PaymentStatus.COMPLETED, PaymentStatus.FAILED))
        self.assertFalse(is_forward(PaymentStatus.COMPLETED, PaymentStatus.PROCESSING))
        self.assertFalse(is_forward(PaymentStatus.REFUNDED, PaymentStatus.REFUNDED))


class TestWebhookSignature(unittest.TestCase):

    def test_parse_signature_header(self):
        self.assertEqual(parse_signature_header("ts=1704908010, v1=abc"), {"ts": "1704908010", "v1": "abc"})

    def test_verify_signature(self):
        manifest = "id:123;request-id:r-1;ts:99;"
        digest = hmac.new(b"secret", manifest.encode(), hashlib.sha256).hexdigest()
        self.assertTrue(verify_signature("secret", "123", "r-1", f"ts=99,v1={digest}"))
        self.assertFalse(verify_signature("secret", "124", "r-1", f"ts=99,v1={digest}"))
        self.assertFalse(verify_signature("secret", "123", "r-1", None))
        self.assertFalse(verify_signature("secret", "123", "r-1", "v1=abc"))


class TestPaymentGatewayFacade(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        payments = FakePayments()
        self.gateway = PaymentGateway(
            payments, FakeRefunds(payments), FakeCustomers(), FakeMeta(), FakePreferences(), sandbox=True
        )

    async def test_refund_amount_must_be_positive(self):
        with self.assertRaises(ValidationError):
            await self.gateway.create_refund("1", Decimal("0"))

    async def test_create_payment_without_token_or_card(self):
        with self.assertRaises(ValidationError):
            await self.gateway.create_payment("PED-2026-000001", Decimal("10"), PayerInfo(email="a@b.pe"))

    async def test_ruc_payer_is_sent_as_ruc(self):
        payer = PayerInfo(email="empresa@b.pe", identification_number="20123456789")
        await self.gateway.create_payment("PED-2026-000001", Decimal("10.005"), payer, token="tok-1")
        request = self.gateway._payments.requests[0]
        self.assertEqual(request.identification_type, "RUC")
        self.assertEqual(request.amount, Decimal("10.01"))


if __name__ == "__main__":
    unittest.main()
