import json
import os
import uuid
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

# Pas de Redis pendant les tests (lu par le lifespan)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from backend.app_setup import dependencies as deps
from backend.app_setup.factory import create_app
from backend.cart.models import CartItem, CartLine
from backend.catalog.models import Product
from backend.config import Settings
from backend.errors import InvalidSignature, PaymentProcessorError
from backend.orders.models import Order, RecordResult
from backend.utils.security import require_user


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


class FakeCatalogRepository:
    def __init__(self, products: Dict[str, Product]):
        self.products = products
        self.fail = False

    def get_products_by_ids(self, ids):
        if self.fail:
            raise RuntimeError("catalog down")
        return {str(i): self.products[str(i)] for i in ids if str(i) in self.products}

    def get_product(self, product_id):
        return self.get_products_by_ids([product_id]).get(str(product_id))


class FakeCartRepository:
    """Table cart_items en mémoire (contrainte unique user_id/product_id incluse)."""

    def __init__(self, catalog: FakeCatalogRepository):
        self.catalog = catalog
        self.rows: List[CartItem] = []
        self.fail = False

    def add(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        item = CartItem(id=f"ci-{uuid.uuid4().hex[:8]}", user_id=user_id, product_id=product_id, quantity=quantity)
        self.rows.append(item)
        return item

    def list_cart_items(self, user_id):
        if self.fail:
            raise RuntimeError("db down")
        return [row for row in self.rows if row.user_id == user_id]

    def list_cart_lines(self, user_id):
        lines = []
        for row in self.list_cart_items(user_id):
            product = self.catalog.products.get(row.product_id)
            lines.append(CartLine(
                id=row.id,
                product_id=row.product_id,
                quantity=row.quantity,
                product_name=product.name if product else "",
                price=product.price if product else 0,
            ))
        return lines

    def find_item(self, user_id, *, cart_item_id=None, product_id=None):
        for row in self.list_cart_items(user_id):
            if cart_item_id and row.id != cart_item_id:
                continue
            if product_id and row.product_id != product_id:
                continue
            return row
        return None

    def insert_item(self, user_id, product_id, quantity):
        if self.find_item(user_id, product_id=product_id):
            raise APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})
        return self.add(user_id, product_id, quantity)

    def set_quantity(self, user_id, cart_item_id, quantity):
        for index, row in enumerate(self.rows):
            if row.id == cart_item_id and row.user_id == user_id:
                self.rows[index] = row.model_copy(update={"quantity": quantity})
                return self.rows[index]
        return None

    def delete_cart_items(self, ids, user_id=None):
        ids = set(ids)
        before = len(self.rows)
        self.rows = [
            row for row in self.rows
            if not (row.id in ids and (user_id is None or row.user_id == user_id))
        ]
        return before - len(self.rows)

    def clear_cart(self, user_id):
        return self.delete_cart_items([row.id for row in self.rows if row.user_id == user_id])

    def release_captured(self, captured_items, user_id):
        """Retire les quantités capturées; supprime la ligne si rien n'a été ajouté depuis."""
        for captured in captured_items:
            row = self.find_item(user_id, cart_item_id=captured["id"])
            if row is None:
                continue
            if row.quantity <= captured["quantity"]:
                self.delete_cart_items([row.id], user_id=user_id)
            else:
                self.set_quantity(user_id, row.id, row.quantity - captured["quantity"])


class FakeOrderRepository:
    """
    Reproduit record_checkout_order: unique par session, insertion des lignes et
    retrait des quantités capturées du panier uniquement à la première insertion.
    """

    def __init__(self, cart_repo: Optional[FakeCartRepository] = None):
        self.cart_repo = cart_repo
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.fail = False

    def record_checkout_order(self, *, session_id, order_fields, items, captured_items):
        self.calls.append({"session_id": session_id, "items": items, "captured_items": captured_items})
        if self.fail:
            raise RuntimeError("connection reset")
        existing = self.orders.get(session_id)
        if existing is not None:
            for key in ("receipt_url", "stripe_payment_intent_id", "customer_email"):
                if order_fields.get(key) is not None:
                    existing[key] = order_fields[key]
            if existing["status"] == "pending":
                existing["status"] = order_fields.get("status") or existing["status"]
            return RecordResult(order_id=existing["id"], created=False, created_at=existing["created_at"])

        row = dict(order_fields)
        row.update({
            "id": f"order-{len(self.orders) + 1}",
            "created_at": "2024-05-01T12:00:00+00:00",
            "stripe_session_id": session_id,
            "order_items": [dict(item) for item in items],
        })
        self.orders[session_id] = row
        if self.cart_repo is not None:
            self.cart_repo.release_captured(captured_items, user_id=order_fields.get("user_id"))
        return RecordResult(order_id=row["id"], created=True, created_at=row["created_at"])

    def get_order_by_session_id(self, session_id):
        if self.fail:
            raise RuntimeError("connection reset")
        row = self.orders.get(session_id)
        return Order.from_row(row) if row else None


class FakeStripeGateway:
    def __init__(self):
        self.customers: Dict[str, str] = {}
        self.created_sessions: List[Dict[str, Any]] = []
        self.line_items: Dict[str, List[Dict[str, Any]]] = {}
        self.receipts: Dict[str, str] = {}
        self.tagged: List[tuple] = []
        self.fail_create = False
        self.fail_list_line_items = False
        self.session_url = "https://checkout.stripe.test/c/pay/cs_test_1"

    def find_customer_id(self, email):
        return self.customers.get(email)

    def create_checkout_session(self, **params):
        if self.fail_create:
            raise PaymentProcessorError()
        self.created_sessions.append(params)
        return {"id": f"cs_test_{len(self.created_sessions)}", "url": self.session_url}

    def list_line_items(self, session_id):
        if self.fail_list_line_items:
            raise PaymentProcessorError()
        return self.line_items.get(session_id, [])

    def retrieve_receipt_url(self, payment_intent_id):
        return self.receipts.get(payment_intent_id)

    def tag_payment_intent(self, payment_intent_id, order_id, receipt_email=None):
        self.tagged.append((payment_intent_id, order_id, receipt_email))

    def construct_event(self, payload, sig_header):
        if sig_header != "valid":
            raise InvalidSignature()
        return json.loads(payload)


class FakeMailer:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    def send_email(self, *, to, subject, html, text):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return f"email-{len(self.sent)}"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://project.supabase.test",
        supabase_anon_key="anon-key",
        supabase_service_key="service-key",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        site_url="https://shop.test",
        resend_api_key="re_test",
        order_from_email="orders@shop.test",
    )


@pytest.fixture
def user() -> Dict[str, Any]:
    return {"id": "user-1", "email": "buyer@example.com"}


@pytest.fixture
def products() -> Dict[str, Product]:
    return {
        "prod-a": Product(id="prod-a", name="Arduino Starter Kit", description="Board + sensors", price="19.99"),
        "prod-b": Product(id="prod-b", name="Solder Kit", price="5.00"),
        "prod-c": Product(id="prod-c", name="Robot Arm", price="49.50", stripe_price_id="price_robot"),
    }


@pytest.fixture
def catalog_repo(products) -> FakeCatalogRepository:
    return FakeCatalogRepository(products)


@pytest.fixture
def cart_repo(catalog_repo) -> FakeCartRepository:
    return FakeCartRepository(catalog_repo)


@pytest.fixture
def order_repo(cart_repo) -> FakeOrderRepository:
    return FakeOrderRepository(cart_repo)


@pytest.fixture
def stripe_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def checkout_event():
    """Fabrique un événement checkout.session.* tel que Stripe l'envoie."""
    def _make(metadata, *, session_id="cs_test_1", event_type="checkout.session.completed", **session_fields):
        session = {
            "id": session_id,
            "object": "checkout.session",
            "payment_status": "paid",
            "amount_total": None,
            "currency": "usd",
            "payment_intent": "pi_test_1",
            "customer_details": {"email": "buyer@example.com", "name": "Ada Lovelace"},
            "metadata": metadata,
        }
        session.update(session_fields)
        return {"id": f"evt_{session_id}", "type": event_type, "data": {"object": session}}
    return _make


@pytest.fixture
def app(settings, user, cart_repo, catalog_repo, order_repo, stripe_gateway, mailer):
    app = create_app(settings)
    app.dependency_overrides[require_user] = lambda: user
    app.dependency_overrides[deps.get_cart_repository] = lambda: cart_repo
    app.dependency_overrides[deps.get_catalog_repository] = lambda: catalog_repo
    app.dependency_overrides[deps.get_order_repository] = lambda: order_repo
    app.dependency_overrides[deps.get_stripe_gateway] = lambda: stripe_gateway
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
