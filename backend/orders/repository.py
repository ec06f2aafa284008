"""
Accès aux données 'orders' / 'order_items'.
- L'écriture passe par la fonction SQL record_checkout_order (une transaction):
  upsert par stripe_session_id, puis (première fois seulement) insertion des
  order_items et retrait des quantités capturées du panier.
- stripe_session_id est unique: c'est la clé d'idempotence.
"""
from typing import Any, Dict, List, Optional
import logging
from postgrest.exceptions import APIError
from supabase import Client

from backend.errors import InternalInconsistency, MissingMetadata
from backend.infra.supabase_client import is_invalid_reference, is_unique_violation
from .models import Order, RecordResult

logger = logging.getLogger(__name__)

ORDER_COLUMNS = (
    "id, user_id, created_at, total_amount, currency, status, shipping_address, "
    "customer_email, stripe_session_id, stripe_payment_intent_id, receipt_url"
)
ORDER_ITEM_COLUMNS = "id, order_id, product_id, product_name, quantity, price, products(name, image_url)"
REFRESHABLE_FIELDS = ("receipt_url", "stripe_payment_intent_id", "customer_email")


# module backend.orders.repository
class OrderRepository:
    def __init__(self, client: Client):
        self.client = client

    def record_checkout_order(
        self,
        *,
        session_id: str,
        order_fields: Dict[str, Any],
        items: List[Dict[str, Any]],
        captured_items: List[Dict[str, Any]],
    ) -> RecordResult:
        """
        Enregistre (ou rafraîchit) la commande d'une session Checkout.
        - created=True uniquement pour l'appel qui a réellement inséré la ligne.
        - Violation d'unicité remontée par la base: quelqu'un d'autre a déjà
          enregistré cette session => chemin de mise à jour.
        - Identifiant invalide ou inconnu (uuid mal formé, clé étrangère absente):
          MissingMetadata; la même redélivrance échouerait toujours.
        """
        params = {
            "p_session_id": session_id,
            "p_order": order_fields,
            "p_items": items,
            "p_captured_items": captured_items,
        }
        try:
            res = self.client.rpc("record_checkout_order", params).execute()
        except APIError as e:
            if is_invalid_reference(e):
                logger.error("orders.repository.record_checkout_order invalid reference session_id=%s error=%s", session_id, e)
                raise MissingMetadata("invalid identifier in checkout metadata") from e
            if not is_unique_violation(e):
                raise
            logger.info("orders.repository.record_checkout_order concurrent insert session_id=%s", session_id)
            order_id = self.refresh_order(session_id, order_fields)
            if not order_id:
                raise InternalInconsistency() from e
            return RecordResult(order_id=order_id, created=False)

        rows = res.data or []
        row = rows[0] if isinstance(rows, list) and rows else rows
        if not isinstance(row, dict) or not row.get("order_id"):
            logger.error("orders.repository.record_checkout_order empty result session_id=%s data=%r", session_id, res.data)
            raise InternalInconsistency()
        return RecordResult(
            order_id=str(row["order_id"]),
            created=bool(row.get("created")),
            created_at=row.get("created_at"),
        )

    def refresh_order(self, session_id: str, fields: Dict[str, Any]) -> Optional[str]:
        """
        Met à jour les champs mutables (statut, reçu, ...) d'une commande existante.
        - Les valeurs None ne remplacent jamais une valeur existante.
        - Le statut n'avance que depuis 'pending' (jamais de retour arrière d'une commande expédiée).
        - Retourne l'id de la commande, ou None si aucune ligne ne correspond.
        """
        order_id: Optional[str] = None
        update = {k: fields[k] for k in REFRESHABLE_FIELDS if fields.get(k) is not None}
        if update:
            res = (
                self.client
                .table("orders")
                .update(update)
                .eq("stripe_session_id", session_id)
                .execute()
            )
            rows = res.data or []
            order_id = str(rows[0]["id"]) if rows else None
        status = fields.get("status")
        if status:
            res = (
                self.client
                .table("orders")
                .update({"status": status})
                .eq("stripe_session_id", session_id)
                .eq("status", "pending")
                .execute()
            )
            rows = res.data or []
            order_id = order_id or (str(rows[0]["id"]) if rows else None)
        if order_id is None:
            order = self.get_order_by_session_id(session_id)
            order_id = order.id if order else None
        return order_id

    def get_order_by_session_id(self, session_id: str) -> Optional[Order]:
        res = (
            self.client
            .table("orders")
            .select(f"{ORDER_COLUMNS}, order_items({ORDER_ITEM_COLUMNS})")
            .eq("stripe_session_id", session_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return Order.from_row(rows[0]) if rows else None
