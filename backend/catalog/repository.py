"""
Accès en lecture au catalogue (table 'products').
"""
from typing import Dict, Iterable, Optional
import logging
from supabase import Client

from .models import Product

logger = logging.getLogger(__name__)


# module backend.catalog.repository
class CatalogRepository:
    def __init__(self, client: Client):
        self.client = client

    def get_products_by_ids(self, ids: Iterable[str]) -> Dict[str, Product]:
        """
        Retourne {id: Product} pour les IDs demandés.
        - Les IDs inconnus sont simplement absents du dict.
        - Les erreurs PostgREST sont propagées (l'appelant décide du code métier).
        """
        id_list = sorted({str(i) for i in ids if i})
        if not id_list:
            return {}
        res = (
            self.client
            .table("products")
            .select("*")
            .in_("id", id_list)
            .execute()
        )
        return {str(row["id"]): Product.model_validate(row) for row in res.data or []}

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.get_products_by_ids([product_id]).get(str(product_id))
