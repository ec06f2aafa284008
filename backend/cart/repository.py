"""
Accès aux données du panier (table 'cart_items').
- Toutes les lectures/écritures sont filtrées par user_id (client service-role, pas de RLS).
- La contrainte unique (user_id, product_id) est posée côté base (supabase/schema.sql).
"""
from typing import Iterable, List, Optional
import logging
from supabase import Client

from .models import CartItem, CartLine

logger = logging.getLogger(__name__)

CART_COLUMNS = "id, user_id, product_id, quantity"


# module backend.cart.repository
class CartRepository:
    def __init__(self, client: Client):
        self.client = client

    def list_cart_items(self, user_id: str) -> List[CartItem]:
        res = (
            self.client
            .table("cart_items")
            .select(CART_COLUMNS)
            .eq("user_id", user_id)
            .order("created_at")
            .execute()
        )
        return [CartItem.model_validate(row) for row in res.data or []]

    def list_cart_lines(self, user_id: str) -> List[CartLine]:
        """Panier + jointure products(name, description, price, image_url)."""
        res = (
            self.client
            .table("cart_items")
            .select("id, product_id, quantity, products(name, description, price, image_url)")
            .eq("user_id", user_id)
            .order("created_at")
            .execute()
        )
        lines: List[CartLine] = []
        for row in res.data or []:
            product = row.get("products") or {}
            lines.append(CartLine(
                id=str(row["id"]),
                product_id=str(row["product_id"]),
                quantity=int(row["quantity"]),
                product_name=product.get("name") or "",
                product_description=product.get("description"),
                price=product.get("price") or 0,
                image_url=product.get("image_url"),
            ))
        return lines

    def find_item(self, user_id: str, *, cart_item_id: Optional[str] = None, product_id: Optional[str] = None) -> Optional[CartItem]:
        query = self.client.table("cart_items").select(CART_COLUMNS).eq("user_id", user_id)
        if cart_item_id:
            query = query.eq("id", cart_item_id)
        if product_id:
            query = query.eq("product_id", product_id)
        res = query.limit(1).execute()
        rows = res.data or []
        return CartItem.model_validate(rows[0]) if rows else None

    def insert_item(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        res = (
            self.client
            .table("cart_items")
            .insert({"user_id": user_id, "product_id": product_id, "quantity": quantity})
            .execute()
        )
        return CartItem.model_validate(res.data[0])

    def set_quantity(self, user_id: str, cart_item_id: str, quantity: int) -> Optional[CartItem]:
        res = (
            self.client
            .table("cart_items")
            .update({"quantity": quantity})
            .eq("id", cart_item_id)
            .eq("user_id", user_id)
            .execute()
        )
        rows = res.data or []
        return CartItem.model_validate(rows[0]) if rows else None

    def delete_cart_items(self, ids: Iterable[str], user_id: Optional[str] = None) -> int:
        """
        Supprime exactement les lignes listées (jamais "tout le panier").
        - user_id optionnel: restreint en plus au propriétaire.
        - Retourne le nombre de lignes supprimées.
        """
        id_list = [str(i) for i in ids if i]
        if not id_list:
            return 0
        query = self.client.table("cart_items").delete().in_("id", id_list)
        if user_id:
            query = query.eq("user_id", user_id)
        res = query.execute()
        return len(res.data or [])

    def clear_cart(self, user_id: str) -> int:
        res = self.client.table("cart_items").delete().eq("user_id", user_id).execute()
        return len(res.data or [])
