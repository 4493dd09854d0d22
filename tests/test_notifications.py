import unittest
from datetime import datetime, timezone
from decimal import Decimal

import httpx

from orderpay.domain.models import (
    NotificationChannelKind, NotificationContext, NotificationType, NotificationUser, PaymentStatus
)
from orderpay.domain.status_maps import select_notification
from orderpay.application.notification_templates import NOTIFICATION_TEMPLATES, RenderedNotification
from orderpay.application.notifications import NotificationDispatcher, render, template_variables
from orderpay.infrastructure.notification_channels import (
    HTTPNotificationChannel, KafkaInAppChannel, SimulatedChannel, build_channels
)

from tests.fakes import RecordingChannel


def make_context(phone="+51987654321") -> NotificationContext:
    return NotificationContext(
        payment_id="pay-1",
        gateway_id="123456",
        amount=Decimal("30.70"),
        currency="PEN",
        payment_method="visa",
        card_last_four="3704",
        paid_at=datetime(2026, 3, 15, 14, 5, tzinfo=timezone.utc),
        order_id="ord-1",
        order_number="PED-2026-000001",
        user=NotificationUser(id="u1", first_name="Ana", last_name="Quispe", email="ana@example.com", phone=phone)
    )


def rendered(context=None, notification_type=NotificationType.PAGO_APROBADO) -> RenderedNotification:
    template = NOTIFICATION_TEMPLATES[notification_type]
    return RenderedNotification(
        type=notification_type, title=template.title, message=template.message, sms=template.sms,
        priority=template.priority, channels=template.channels, context=context or make_context()
    )


class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish_notification(self, user_id, payload):
        self.published.append((user_id, payload))
        return True


class TestNotificationSelection(unittest.TestCase):

    def test_every_notification_type_has_a_template(self):
        self.assertEqual(set(NOTIFICATION_TEMPLATES), set(NotificationType))

    def test_select_notification(self):
        cases = [
            (PaymentStatus.FAILED, "cc_rejected_insufficient_amount", NotificationType.PAGO_FONDOS_INSUFICIENTES),
            (PaymentStatus.FAILED, "cc_rejected_bad_filled_security_code",
             NotificationType.PAGO_CODIGO_SEGURIDAD_INVALIDO),
            (PaymentStatus.FAILED, "cc_rejected_bad_filled_date", NotificationType.PAGO_ERROR_FORMULARIO),
            (PaymentStatus.FAILED, "cc_rejected_call_for_authorize", NotificationType.PAGO_VALIDACION_REQUERIDA),
            (PaymentStatus.CANCELLED, "expired", NotificationType.PAGO_EXPIRADO),
            (PaymentStatus.FAILED, "cc_rejected_other_reason", NotificationType.PAGO_RECHAZADO),
            (PaymentStatus.COMPLETED, "accredited", NotificationType.PAGO_APROBADO),
            (PaymentStatus.PROCESSING, None, NotificationType.PAGO_PENDIENTE),
            (PaymentStatus.REFUNDED, "partially_refunded", NotificationType.PAGO_REEMBOLSADO),
            (PaymentStatus.PENDING, None, None),
        ]
        for status, detail, expected in cases:
            with self.subTest(status=status, detail=detail):
                self.assertEqual(select_notification(status, detail), expected)

    def test_template_variables(self):
        variables = template_variables(make_context())
        self.assertEqual(variables["monto"], "30.70")
        self.assertEqual(variables["nombreCompleto"], "Ana Quispe")
        self.assertEqual(variables["tarjetaEnmascarada"], "**** **** **** 3704")
        self.assertEqual(variables["fechaPago"], "15/03/2026 14:05")

    def test_render_leaves_unknown_placeholders(self):
        self.assertEqual(render("{{monto}} {{otro}}", {"monto": "1.00"}), "1.00 {{otro}}")

    def test_context_contract_uses_spanish_keys(self):
        contract = make_context().to_contract()
        self.assertEqual(contract["numeroPedido"], "PED-2026-000001")
        self.assertEqual(contract["usuario"]["nombres"], "Ana")
        self.assertEqual(contract["usuario"]["celular"], "+51987654321")
        self.assertEqual(contract["ultimosCuatroDigitos"], "3704")


class TestNotificationDispatcher(unittest.IsolatedAsyncioTestCase):

    async def test_renders_and_sends_to_template_channels(self):
        channels = {kind: RecordingChannel() for kind in NotificationChannelKind}

        sent = await NotificationDispatcher(channels).dispatch(NotificationType.PAGO_APROBADO, make_context())

        self.assertTrue(sent)
        email = channels[NotificationChannelKind.EMAIL].sent[0]
        self.assertIn("30.70 PEN", email.message)
        self.assertIn("#PED-2026-000001", email.message)
        self.assertTrue(channels[NotificationChannelKind.IN_APP].sent)
        self.assertFalse(channels[NotificationChannelKind.SMS].sent)

    async def test_one_channel_is_enough(self):
        channels = {
            NotificationChannelKind.EMAIL: RecordingChannel(error=RuntimeError("smtp caído")),
            NotificationChannelKind.IN_APP: RecordingChannel(),
        }
        self.assertTrue(
            await NotificationDispatcher(channels).dispatch(NotificationType.PAGO_APROBADO, make_context())
        )

    async def test_all_channels_failing(self):
        channels = {
            NotificationChannelKind.EMAIL: RecordingChannel(result=False),
            NotificationChannelKind.IN_APP: RecordingChannel(error=RuntimeError("kafka caído")),
        }
        self.assertFalse(
            await NotificationDispatcher(channels).dispatch(NotificationType.PAGO_APROBADO, make_context())
        )

    async def test_missing_template(self):
        dispatcher = NotificationDispatcher({NotificationChannelKind.EMAIL: RecordingChannel()}, templates={})
        with self.assertLogs("orderpay.application.notifications", level="ERROR") as logs:
            self.assertFalse(await dispatcher.dispatch(NotificationType.PAGO_APROBADO, make_context()))
        self.assertIn("PAGO_APROBADO", "\n".join(logs.output))

    async def test_pending_payment_sends_nothing(self):
        channel = RecordingChannel()
        dispatcher = NotificationDispatcher({NotificationChannelKind.EMAIL: channel})
        self.assertFalse(await dispatcher.dispatch_for_payment(PaymentStatus.PENDING, None, make_context()))
        self.assertEqual(channel.sent, [])


class TestNotificationChannels(unittest.IsolatedAsyncioTestCase):

    async def test_simulated_sms_needs_phone(self):
        channel = SimulatedChannel(NotificationChannelKind.SMS, latency=0)
        self.assertFalse(await channel.send(rendered(make_context(phone=None))))
        self.assertTrue(await channel.send(rendered()))

    async def test_http_channel_posts_to_notification_service(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202, json={"ok": True})

        channel = HTTPNotificationChannel(
            NotificationChannelKind.SMS, "http://notify.local/", "key-1", transport=httpx.MockTransport(handler)
        )

        self.assertTrue(await channel.send(rendered(notification_type=NotificationType.PAGO_REEMBOLSADO)))
        request = seen[0]
        self.assertEqual(request.url.path, "/api/notifications/sms")
        self.assertEqual(request.headers["X-API-Key"], "key-1")
        self.assertIn(b"+51987654321", request.content)

    async def test_http_channel_retries_then_gives_up(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("sin conexión", request=request)

        channel = HTTPNotificationChannel(
            NotificationChannelKind.EMAIL, "http://notify.local", "key-1",
            max_retries=3, retry_delay=0, transport=httpx.MockTransport(handler)
        )
        self.assertFalse(await channel.send(rendered()))
        self.assertEqual(len(attempts), 3)

    async def test_in_app_channel_publishes_event(self):
        publisher = RecordingPublisher()
        self.assertTrue(await KafkaInAppChannel(publisher).send(rendered()))
        user_id, payload = publisher.published[0]
        self.assertEqual(user_id, "u1")
        self.assertEqual(payload["type"], "PAGO_APROBADO")
        self.assertEqual(payload["context"]["pedidoId"], "ord-1")

    def test_build_channels_without_service_simulates(self):
        channels = build_channels("", "")
        self.assertEqual(set(channels), set(NotificationChannelKind))
        self.assertTrue(all(isinstance(c, SimulatedChannel) for c in channels.values()))


if __name__ == "__main__":
    unittest.main()
