import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from backend.app_setup.dependencies import (
    get_cart_repository,
    get_catalog_repository,
    get_mailer,
    get_order_repository,
    get_settings,
    get_stripe_gateway,
)
from backend.cart.repository import CartRepository
from backend.catalog.repository import CatalogRepository
from backend.config import Settings
from backend.errors import AppError
from backend.orders.repository import OrderRepository
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.security import require_user
from . import service as payments_service
from .stripe_client import StripeGateway
from .webhook import handle_stripe_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class CheckoutItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: List[CheckoutItem] = Field(min_length=1)


# module backend.payments.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout_session(
    body: CheckoutRequest,
    user: Dict[str, Any] = Depends(require_user),
    cart_repo: CartRepository = Depends(get_cart_repository),
    catalog_repo: CatalogRepository = Depends(get_catalog_repository),
    stripe_gateway: StripeGateway = Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Crée une session Checkout Stripe pour le panier serveur de l'utilisateur authentifié.
    - Entrée JSON: { "items": [ { "product_id": "<uuid>", "quantity": <int> }, ... ] }
      (seuls les product_id servent à filtrer le panier; prix et quantités viennent du serveur)
    - Sécurité: require_user (Bearer) + rate limit (10 req / 60s)
    - Réponse: {"id": "<session id>", "url": "<url Stripe>"}
    """
    result = payments_service.create_checkout_session(
        user=user,
        claimed_product_ids=[item.product_id for item in body.items],
        cart_repo=cart_repo,
        catalog_repo=catalog_repo,
        stripe_gateway=stripe_gateway,
        settings=settings,
    )
    return {"id": result["id"], "url": result["url"]}


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(
    request: Request,
    stripe_gateway: StripeGateway = Depends(get_stripe_gateway),
    order_repo: OrderRepository = Depends(get_order_repository),
    mailer=Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Webhook Stripe (Checkout): enregistre la commande d'une session payée.
    - Corps brut + Stripe-Signature (jamais de parsing JSON avant vérification)
    - Réponses 200: recorded | duplicate | ignored | awaiting_payment | rejected
    - 400 si signature invalide; 5xx sur erreur transitoire (Stripe redélivrera)
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        return await run_in_threadpool(
            handle_stripe_webhook,
            payload,
            signature,
            stripe_gateway=stripe_gateway,
            order_repo=order_repo,
            mailer=mailer,
            settings=settings,
        )
    except AppError:
        raise
    except Exception as e:
        logger.exception("payments.webhook processing failed")
        raise AppError() from e
