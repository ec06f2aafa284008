"""
Dépendances FastAPI partagées (settings, clients, repositories, Stripe, mailer).
- Aucun singleton global: les clients sont créés à la demande et mémorisés sur app.state.
- Les tests remplacent ces fonctions via app.dependency_overrides.
"""
from fastapi import Request
from supabase import Client

from backend.cart.repository import CartRepository
from backend.catalog.repository import CatalogRepository
from backend.config import Settings
from backend.infra.mailer import make_mailer
from backend.infra.supabase_client import make_anon_supabase, make_service_supabase
from backend.orders.repository import OrderRepository
from backend.payments.stripe_client import StripeGateway


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _cached(request: Request, name: str, factory):
    state = request.app.state
    value = getattr(state, name, None)
    if value is None:
        value = factory(state.settings)
        setattr(state, name, value)
    return value


def get_service_db(request: Request) -> Client:
    return _cached(request, "service_db", make_service_supabase)


def get_auth_client(request: Request) -> Client:
    return _cached(request, "auth_db", make_anon_supabase)


def get_cart_repository(request: Request) -> CartRepository:
    return CartRepository(get_service_db(request))


def get_catalog_repository(request: Request) -> CatalogRepository:
    return CatalogRepository(get_service_db(request))


def get_order_repository(request: Request) -> OrderRepository:
    return OrderRepository(get_service_db(request))


def get_stripe_gateway(request: Request) -> StripeGateway:
    settings = get_settings(request)
    return StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)


def get_mailer(request: Request):
    return _cached(request, "mailer", make_mailer)
