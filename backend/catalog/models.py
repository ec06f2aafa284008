# module backend.catalog.models
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict


class Product(BaseModel):
    """Ligne 'products' (lecture seule pour le coeur checkout/commandes)."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    stripe_product_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    stock_quantity: int = 0
    in_stock: bool = True
    category: Optional[str] = None
    skill_level: Optional[str] = None
    age_group: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def live_price_ref(self) -> Optional[str]:
        # Seules les références Stripe "price_..." sont réutilisables telles quelles
        ref = (self.stripe_price_id or "").strip()
        return ref if ref.startswith("price_") else None
