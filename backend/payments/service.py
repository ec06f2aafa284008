"""
Cas d'usage 'payments': création de session Checkout à partir du panier serveur.
Orchestre cart (repository), catalog, cart logic, metadata et Stripe.
"""
from typing import Any, Dict, Iterable, Optional
import logging

from backend.cart.repository import CartRepository
from backend.catalog.repository import CatalogRepository
from backend.config import Settings
from backend.errors import CatalogUnavailable, PaymentProcessorError, Unauthenticated
from . import cart as cart_logic
from .metadata import make_metadata
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)


def _find_customer_id(stripe_gateway: StripeGateway, email: str) -> Optional[str]:
    # Best effort: sans client Stripe existant on passe customer_email
    try:
        return stripe_gateway.find_customer_id(email)
    except PaymentProcessorError:
        logger.warning("payments.service customer lookup failed email=%s", email)
        return None


def create_checkout_session(
    *,
    user: Dict[str, Any],
    claimed_product_ids: Iterable[str],
    cart_repo: CartRepository,
    catalog_repo: CatalogRepository,
    stripe_gateway: StripeGateway,
    settings: Settings,
) -> Dict[str, Any]:
    """
    Prépare et crée la session Stripe pour le panier de l'utilisateur.
    Étapes:
      1) relit le panier serveur (jamais le prix ni la liste envoyés par le client)
      2) intersection avec les produits annoncés par le client (CartMismatch si vide)
      3) relit les produits et construit les line_items au prix courant
      4) instantané panier dans les metadata (MetadataTooLarge si trop gros)
      5) crée la session Stripe; le panier n'est PAS modifié ici
    Retour: {"id", "url", "total_amount_cents"}
    """
    user_id = str(user.get("id") or "")
    email = user.get("email")
    if not user_id or not email:
        raise Unauthenticated("Invalid or expired token")

    try:
        rows = cart_repo.list_cart_items(user_id)
    except Exception as e:
        logger.exception("payments.service cart read failed user_id=%s", user_id)
        raise CatalogUnavailable() from e

    surviving = cart_logic.select_cart_rows(claimed_product_ids, rows)

    try:
        products = catalog_repo.get_products_by_ids([row.product_id for row in surviving])
    except Exception as e:
        logger.exception("payments.service catalog read failed user_id=%s", user_id)
        raise CatalogUnavailable() from e

    line_items, snapshot, total = cart_logic.to_line_items(surviving, products, settings.default_currency)
    metadata = make_metadata(user_id, snapshot, total)

    params: Dict[str, Any] = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": settings.success_url,
        "cancel_url": settings.cancel_url,
        "client_reference_id": user_id,
        "metadata": metadata,
    }
    customer_id = _find_customer_id(stripe_gateway, email)
    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = email

    session = stripe_gateway.create_checkout_session(**params)
    url = session.get("url")
    if not url:
        logger.error("payments.service session without url session_id=%s", session.get("id"))
        raise PaymentProcessorError()

    logger.info(
        "payments.checkout session_id=%s user_id=%s lines=%s total_cents=%s",
        session.get("id"), user_id, len(line_items), total,
    )
    return {"id": session.get("id"), "url": url, "total_amount_cents": total}
