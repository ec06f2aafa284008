# module backend.orders.models
"""Modèles des commandes (tables 'orders' et 'order_items')."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
CENT = Decimal("0.01")
UNIT_PRICE_QUANTUM = Decimal("0.000001")


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    order_id: Optional[str] = None
    product_id: str
    product_name: str = ""
    quantity: int
    price: Decimal
    image_url: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    total_amount: Decimal
    currency: str = "usd"
    status: str = "processing"
    shipping_address: Optional[Dict[str, Any]] = None
    customer_email: Optional[str] = None
    stripe_session_id: str
    stripe_payment_intent_id: Optional[str] = None
    receipt_url: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Order":
        """
        Construit une commande depuis une ligne PostgREST avec jointure
        order_items(..., products(name, image_url)).
        - product_name: instantané, sinon nom courant du produit
        """
        items = []
        for item in row.get("order_items") or []:
            product = item.get("products") or {}
            items.append(OrderItem(
                id=item.get("id"),
                order_id=item.get("order_id"),
                product_id=str(item.get("product_id") or ""),
                product_name=item.get("product_name") or product.get("name") or "",
                quantity=int(item.get("quantity") or 0),
                price=item.get("price") or 0,
                image_url=product.get("image_url"),
            ))
        data = {k: v for k, v in row.items() if k != "order_items"}
        return cls(items=items, **data)

    def to_public(self) -> Dict[str, Any]:
        """Forme renvoyée au navigateur (montants en nombre, devise en majuscules)."""
        return {
            "id": self.id,
            "created_at": self.created_at,
            "total_amount": float(self.total_amount),
            "currency": (self.currency or "usd").upper(),
            "status": self.status,
            "receipt_url": self.receipt_url,
            "shipping_address": self.shipping_address,
            "customer_email": self.customer_email,
            "stripe_session_id": self.stripe_session_id,
            "items": [
                {
                    "id": item.id,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "price": float(item.price),
                    "image_url": item.image_url,
                }
                for item in self.items
            ],
        }


class OrderLine(BaseModel):
    """
    Ligne réconciliée (ce qui a réellement été acheté), avant écriture.
    - line_amount: sous-total facturé par Stripe pour la ligne (centimes), s'il est connu.
    - price: prix unitaire exact au centime quand la division tombe juste,
      sinon à 6 décimales (order_items.price numeric(14, 6)) pour que
      price * quantity retombe sur le sous-total facturé.
    """
    product_id: str
    product_name: str = ""
    quantity: int
    unit_amount: int
    line_amount: Optional[int] = None
    cart_item_id: Optional[str] = None

    @property
    def price(self) -> Decimal:
        if self.line_amount is None or self.quantity <= 0:
            return (Decimal(self.unit_amount) / 100).quantize(CENT)
        exact = Decimal(self.line_amount) / (100 * self.quantity)
        if exact == exact.quantize(CENT):
            return exact.quantize(CENT)
        return exact.quantize(UNIT_PRICE_QUANTUM, rounding=ROUND_HALF_UP)

    @property
    def subtotal_amount(self) -> int:
        if self.line_amount is not None:
            return self.line_amount
        return self.unit_amount * self.quantity


class RecordResult(BaseModel):
    order_id: str
    created: bool
    created_at: Optional[str] = None
