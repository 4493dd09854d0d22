import unittest
from decimal import Decimal
from unittest import mock

import httpx

from orderpay.config import settings
from orderpay.database import get_session_factory
from orderpay.domain.exceptions import GatewayUnavailableError
from orderpay.main import app
from orderpay.presentation.api import get_dispatcher, get_payment_gateway

from tests.base import DatabaseTestCase

ADMIN = {"X-Admin-Token": "admin-secret"}

ORDER_BODY = {
    "user_id": "u1",
    "address_id": "addr1",
    "lines": [{"product_id": "A", "quantity": 2}, {"product_id": "B", "quantity": 1}],
    "payment_method": "CREDIT_CARD",
    "shipping_method": "DELIVERY",
    "promotion_code": "BIENVENIDO10",
}


class ApiTestCase(DatabaseTestCase):
    """Cliente HTTP sobre la app con la base temporal y la pasarela falsa"""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        for name, value in (
            ("ADMIN_API_TOKEN", "admin-secret"),
            ("MP_WEBHOOK_SECRET", ""),
            ("SHIPPING_DELIVERY_FEE", Decimal("10.00")),
        ):
            patcher = mock.patch.object(settings, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)

        app.dependency_overrides[get_session_factory] = lambda: self.session_factory
        app.dependency_overrides[get_payment_gateway] = lambda: self.gateway
        app.dependency_overrides[get_dispatcher] = lambda: self.dispatcher
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    async def create_order(self, **overrides):
        response = await self.client.post("/pedidos", json=dict(ORDER_BODY, **overrides))
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()


class TestOrdersApi(ApiTestCase):

    async def test_health(self):
        response = await self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")

    async def test_create_order(self):
        order = await self.create_order()
        self.assertTrue(order["number"].startswith("PED-"))
        self.assertEqual(order["status"], "PENDING")
        self.assertEqual(Decimal(str(order["total"])), Decimal("30.70"))
        self.assertEqual(Decimal(str(order["discount_amount"])), Decimal("2.30"))

    async def test_create_order_without_stock(self):
        response = await self.client.post("/pedidos", json=dict(ORDER_BODY, lines=[{"product_id": "C", "quantity": 3}]))
        self.assertEqual(response.status_code, 400)
        self.assertIn("Stock insuficiente", response.json()["detail"])

    async def test_create_order_rejects_empty_lines(self):
        response = await self.client.post("/pedidos", json=dict(ORDER_BODY, lines=[]))
        self.assertEqual(response.status_code, 422)

    async def test_get_order_of_another_user(self):
        order = await self.create_order()
        own = await self.client.get(f"/pedidos/{order['id']}", headers={"X-User-Id": "u1"})
        other = await self.client.get(f"/pedidos/{order['id']}", headers={"X-User-Id": "u2"})
        missing = await self.client.get("/pedidos/no-existe")
        self.assertEqual(own.status_code, 200)
        self.assertEqual(other.status_code, 403)
        self.assertEqual(missing.status_code, 404)

    async def test_manual_status_update_requires_admin(self):
        order = await self.create_order()
        body = {"status": "SHIPPED", "internal_notes": "despachado"}

        response = await self.client.patch(f"/pedidos/{order['id']}/estado", json=body)
        self.assertEqual(response.status_code, 403)

        response = await self.client.patch(f"/pedidos/{order['id']}/estado", json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "SHIPPED")

    async def test_validate_promotion(self):
        response = await self.client.get("/promociones/BIENVENIDO10/validar", params={"monto": "23.00"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(str(response.json()["discount"])), Decimal("2.30"))

        response = await self.client.get("/promociones/UNICO/validar", params={"monto": "23.00"})
        self.assertEqual(response.status_code, 400)


class TestPaymentsApi(ApiTestCase):

    async def test_card_payment_and_refund(self):
        order = await self.create_order()
        response = await self.client.post("/pagos/tarjeta", json={
            "order_id": order["id"],
            "user_id": "u1",
            "token": "tok-abc",
            "payer": {"email": "ana@example.com", "identification_number": "12345678"},
        })
        self.assertEqual(response.status_code, 201, response.text)
        payment = response.json()
        self.assertEqual(payment["status"], "COMPLETED")

        response = await self.client.post(f"/pagos/{payment['gateway_id']}/capturar", headers=ADMIN)
        self.assertEqual(response.status_code, 409)

        response = await self.client.post(
            f"/pagos/{payment['gateway_id']}/reembolsos", json={"amount": "5.00", "reason": "merma"}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 201, response.text)
        refund = response.json()
        self.assertEqual(refund["payment"]["status"], "REFUNDED")
        self.assertEqual(Decimal(str(refund["payment"]["refunded_amount"])), Decimal("5.00"))

    async def test_rejected_card_payment(self):
        order = await self.create_order()
        self.fake_payments.next_status = "rejected"
        self.fake_payments.next_detail = "cc_rejected_bad_filled_security_code"

        response = await self.client.post("/pagos/tarjeta", json={
            "order_id": order["id"],
            "user_id": "u1",
            "token": "tok-abc",
            "payer": {"email": "ana@example.com"},
        })

        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.json()["detail"], "Código de seguridad de la tarjeta inválido.")

    async def test_admin_routes_require_token(self):
        self.assertEqual((await self.client.get("/pagos/buscar")).status_code, 403)
        self.assertEqual((await self.client.get("/pagos/buscar", headers={"X-Admin-Token": "otro"})).status_code, 403)
        self.assertEqual((await self.client.get("/pagos/buscar", headers=ADMIN)).status_code, 200)

    async def test_payment_methods_catalog(self):
        response = await self.client.get("/pagos/metodos")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([m["id"] for m in response.json()], ["visa", "master"])

    async def test_customers(self):
        response = await self.client.post("/pagos/clientes", json={"email": "ana@example.com"}, headers=ADMIN)
        self.assertEqual(response.status_code, 201)
        customer_id = response.json()["id"]

        response = await self.client.get("/pagos/clientes/buscar", params={"email": "ana@example.com"}, headers=ADMIN)
        self.assertEqual([c["id"] for c in response.json()], [customer_id])

        response = await self.client.get("/pagos/clientes/zzz", headers=ADMIN)
        self.assertEqual(response.status_code, 404)


class TestCheckoutApi(ApiTestCase):

    async def test_checkout_returns_init_point(self):
        order = await self.create_order()

        response = await self.client.post("/pagos/checkout", json={"order_id": order["id"], "user_id": "u1"})
        self.assertEqual(response.status_code, 201, response.text)
        payment = response.json()
        self.assertEqual(payment["status"], "PENDING")
        self.assertEqual(payment["preference_id"], "pref-1")
        self.assertIn("pref_id=pref-1", payment["init_point"])
        self.assertIsNone(payment["gateway_id"])

        response = await self.client.post("/pagos/checkout", json={"order_id": order["id"], "user_id": "u2"})
        self.assertEqual(response.status_code, 403)

    async def test_order_payments_listing(self):
        order = await self.create_order()
        await self.client.post("/pagos/checkout", json={"order_id": order["id"], "user_id": "u1"})

        response = await self.client.get(f"/pedidos/{order['id']}/pagos", headers={"X-User-Id": "u1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["preference_id"] for p in response.json()], ["pref-1"])

        other = await self.client.get(f"/pedidos/{order['id']}/pagos", headers={"X-User-Id": "u2"})
        missing = await self.client.get("/pedidos/no-existe/pagos")
        self.assertEqual(other.status_code, 403)
        self.assertEqual(missing.status_code, 404)

    async def test_payment_status(self):
        order = await self.create_order()
        checkout = (await self.client.post("/pagos/checkout", json={"order_id": order["id"], "user_id": "u1"})).json()

        response = await self.client.get(f"/pagos/registro/{checkout['id']}/estado")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Este pago no tiene un ID de pago de MercadoPago")

        response = await self.client.post("/pagos/tarjeta", json={
            "order_id": order["id"],
            "user_id": "u1",
            "token": "tok-abc",
            "payer": {"email": "ana@example.com"},
        })
        self.assertEqual(response.status_code, 201, response.text)
        card = response.json()

        response = await self.client.get(f"/pagos/registro/{card['id']}/estado", headers={"X-User-Id": "u1"})
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["gateway_status"], "approved")
        self.assertEqual(body["payment"]["gateway_id"], card["gateway_id"])

        response = await self.client.get("/pagos/registro/no-existe/estado")
        self.assertEqual(response.status_code, 404)


class TestWebhookApi(ApiTestCase):

    async def test_webhook_applies_payment(self):
        order = await self.create_order()
        self.fake_payments.put("555", "approved", order["number"], "accredited", Decimal("30.70"))

        response = await self.client.post("/pagos/webhook", json={
            "id": 42, "type": "payment", "action": "payment.updated", "data": {"id": "555"}
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["outcome"], "applied")
        order = (await self.client.get(f"/pedidos/{order['id']}")).json()
        self.assertEqual(order["status"], "CONFIRMED")

    async def test_webhook_query_params_fallback(self):
        order = await self.create_order()
        self.fake_payments.put("556", "approved", order["number"], "accredited", Decimal("30.70"))

        response = await self.client.post("/pagos/webhook", params={"data.id": "556", "type": "payment"}, content=b"")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["processed"])

    async def test_webhook_always_answers_200(self):
        async def unavailable(payment_id):
            raise GatewayUnavailableError("sin conexión")

        with mock.patch.object(self.fake_payments, "get_payment", unavailable):
            response = await self.client.post("/pagos/webhook", json={"id": 1, "type": "payment", "data": {"id": "1"}})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["processed"])
        self.assertEqual(body["outcome"], "error")


if __name__ == "__main__":
    unittest.main()
