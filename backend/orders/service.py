"""
Lecture d'une commande par id de session Stripe (page de confirmation).
"""
from typing import Any, Dict
import logging

from backend.errors import CatalogUnavailable, Forbidden, InvalidRequest, OrderNotFound
from .models import Order
from .repository import OrderRepository

logger = logging.getLogger(__name__)


# module backend.orders.service
def get_order_for_user(session_id: str, user: Dict[str, Any], order_repo: OrderRepository) -> Order:
    """
    Retourne la commande liée à session_id si elle appartient à l'utilisateur.
    - Absente: OrderNotFound (le webhook peut ne pas être encore arrivé; le client réessaie)
    - Appartient à un autre compte (ou à aucun): Forbidden
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise InvalidRequest("session_id is required")

    try:
        order = order_repo.get_order_by_session_id(session_id)
    except Exception as e:
        logger.exception("orders.service lookup failed session_id=%s", session_id)
        raise CatalogUnavailable("Orders temporarily unavailable, please retry") from e

    if order is None:
        raise OrderNotFound()
    if not order.user_id or str(order.user_id) != str(user.get("id")):
        logger.warning(
            "orders.service ownership mismatch session_id=%s user_id=%s", session_id, user.get("id")
        )
        raise Forbidden("This order belongs to another account")
    return order
