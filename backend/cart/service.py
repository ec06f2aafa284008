"""
Cas d'usage 'cart': panier par utilisateur.
- Identité d'une ligne: (user_id, product_id); ajouter un produit déjà présent incrémente.
- Une quantité <= 0 supprime la ligne.
"""
from decimal import Decimal
from typing import Any, Dict
import logging

from postgrest.exceptions import APIError

from backend.catalog.repository import CatalogRepository
from backend.errors import CartItemNotFound, CatalogUnavailable, InvalidRequest
from backend.infra.supabase_client import is_unique_violation
from .models import CartItem
from .repository import CartRepository

logger = logging.getLogger(__name__)


def get_cart(user_id: str, cart_repo: CartRepository) -> Dict[str, Any]:
    """
    Panier hydraté + totaux (prix courant du catalogue, indicatif seulement:
    le checkout recalcule tout côté serveur).
    """
    lines = cart_repo.list_cart_lines(user_id)
    total_price = sum((line.price * line.quantity for line in lines), Decimal("0"))
    return {
        "items": [line.model_dump(mode="json") for line in lines],
        "total_price": float(total_price),
        "total_items": sum(line.quantity for line in lines),
    }


def add_item(
    user_id: str,
    product_id: str,
    quantity: int,
    cart_repo: CartRepository,
    catalog_repo: CatalogRepository,
) -> CartItem:
    """
    Ajoute un produit au panier.
    - Vérifie que le produit existe au catalogue.
    - Ligne existante => incrément; sinon insertion.
    - Course sur la contrainte unique (deux onglets): bascule sur l'incrément.
    """
    if quantity < 1:
        raise InvalidRequest("Quantity must be at least 1")
    try:
        product = catalog_repo.get_product(product_id)
    except Exception as e:
        logger.exception("cart.service.add_item catalog read failed product_id=%s", product_id)
        raise CatalogUnavailable() from e
    if product is None:
        raise InvalidRequest("Unknown product")

    existing = cart_repo.find_item(user_id, product_id=product_id)
    if existing is None:
        try:
            return cart_repo.insert_item(user_id, product_id, quantity)
        except APIError as e:
            if not is_unique_violation(e):
                raise
            logger.info("cart.service.add_item concurrent insert user_id=%s product_id=%s", user_id, product_id)
            existing = cart_repo.find_item(user_id, product_id=product_id)
            if existing is None:
                raise
    updated = cart_repo.set_quantity(user_id, existing.id, existing.quantity + quantity)
    if updated is None:
        raise CartItemNotFound()
    return updated


def update_quantity(user_id: str, cart_item_id: str, quantity: int, cart_repo: CartRepository) -> Dict[str, Any]:
    if quantity <= 0:
        remove_item(user_id, cart_item_id, cart_repo)
        return {"removed": True}
    updated = cart_repo.set_quantity(user_id, cart_item_id, quantity)
    if updated is None:
        raise CartItemNotFound()
    return {"item": updated.model_dump()}


def remove_item(user_id: str, cart_item_id: str, cart_repo: CartRepository) -> None:
    deleted = cart_repo.delete_cart_items([cart_item_id], user_id=user_id)
    if not deleted:
        raise CartItemNotFound()


def clear_cart(user_id: str, cart_repo: CartRepository) -> int:
    return cart_repo.clear_cart(user_id)
