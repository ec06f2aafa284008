# module backend.cart.models
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CartItem(BaseModel):
    """Ligne 'cart_items': identité (user_id, product_id), quantité >= 1."""
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    product_id: str
    quantity: int = Field(ge=1)


class CartLine(BaseModel):
    """Ligne de panier hydratée avec le produit (affichage panier)."""
    id: str
    product_id: str
    quantity: int
    product_name: str = ""
    product_description: Optional[str] = None
    price: Decimal = Decimal("0")
    image_url: Optional[str] = None


class AddCartItemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class UpdateCartItemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quantity: int
