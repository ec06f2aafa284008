"""
Logique panier -> line_items Stripe, pure (pas de Stripe, pas de DB).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Tuple
import logging

from backend.cart.models import CartItem
from backend.catalog.models import Product
from backend.errors import CartMismatch, EmptyLineItems
from .metadata import CartSnapshotItem

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# module backend.payments.cart
def to_minor_units(amount: Any) -> int:
    """
    Convertit un montant (unité monétaire) en centimes, arrondi au plus proche (half-up).
    - Decimal(str(...)) évite les artefacts binaires des floats (19.99 -> 1999).
    """
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(int(amount)) / 100).quantize(CENT)


def select_cart_rows(claimed_product_ids: Iterable[str], rows: List[CartItem]) -> List[CartItem]:
    """
    Intersection entre les produits annoncés par le client et les lignes serveur.
    - Les quantités retenues sont celles du serveur.
    - Soulève CartMismatch si l'intersection est vide.
    """
    claimed = {str(p).strip() for p in claimed_product_ids if str(p or "").strip()}
    surviving = [row for row in rows if row.product_id in claimed]
    if not surviving:
        raise CartMismatch()
    return surviving


def to_line_items(
    rows: List[CartItem],
    products_by_id: Dict[str, Product],
    currency: str,
) -> Tuple[List[Dict[str, Any]], List[CartSnapshotItem], int]:
    """
    Construit les line_items Stripe + l'instantané panier + le total (centimes).
    - Produit avec référence Stripe "price_..." => {"price": ref, "quantity": q}
    - Sinon price_data (unit_amount recalculé depuis le prix courant du produit)
    - Lignes ignorées: produit introuvable, prix <= 0
    - Total: arrondi par ligne (unit_amount) puis somme unit_amount * quantité
    - Soulève EmptyLineItems si aucune ligne valide n'est construite.
    """
    line_items: List[Dict[str, Any]] = []
    snapshot: List[CartSnapshotItem] = []
    total = 0

    for row in rows:
        product = products_by_id.get(row.product_id)
        if product is None:
            logger.warning("payments.cart.to_line_items product missing product_id=%s cart_item_id=%s", row.product_id, row.id)
            continue
        unit_amount = to_minor_units(product.price)
        if unit_amount <= 0:
            logger.warning("payments.cart.to_line_items non positive price product_id=%s", product.id)
            continue

        price_ref = product.live_price_ref
        if price_ref:
            line_items.append({"price": price_ref, "quantity": row.quantity})
        else:
            product_data: Dict[str, Any] = {"name": product.name}
            if product.description:
                product_data["description"] = product.description
            line_items.append({
                "quantity": row.quantity,
                "price_data": {
                    "currency": currency,
                    "unit_amount": unit_amount,
                    "product_data": product_data,
                },
            })

        snapshot.append(CartSnapshotItem(
            product_id=product.id,
            quantity=row.quantity,
            unit_amount=unit_amount,
            price_ref=price_ref,
            cart_item_id=row.id,
            name=product.name,
        ))
        total += unit_amount * row.quantity

    if not line_items:
        raise EmptyLineItems()
    return line_items, snapshot, total
