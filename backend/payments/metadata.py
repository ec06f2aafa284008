"""
Sérialisation/désérialisation des métadonnées Stripe (user_id, instantané panier).

Format (Stripe: 50 clés max, 500 caractères max par valeur):
- user_id: identifiant du propriétaire du panier
- total_amount_cents: total calculé à la création de session
- cart_chunks: nombre de fragments N
- cart_0 .. cart_{N-1}: JSON compact découpé en fragments de 500 caractères
  [{"p": product_id, "q": qty, "a": unit_amount, "r": price_ref?, "c": cart_item_id, "n": name}]
"""
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from backend.errors import MetadataTooLarge, MissingMetadata

STRIPE_METADATA_MAX_KEYS = 50
STRIPE_METADATA_MAX_VALUE = 500
CART_KEY_PREFIX = "cart_"
RESERVED_KEYS = ("user_id", "total_amount_cents", "cart_chunks")


class CartSnapshotItem(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    product_id: str = Field(alias="p", min_length=1)
    quantity: int = Field(alias="q", ge=1)
    unit_amount: int = Field(alias="a", ge=0)
    price_ref: Optional[str] = Field(default=None, alias="r")
    cart_item_id: str = Field(alias="c", min_length=1)
    name: str = Field(default="", alias="n")


class CheckoutMetadata(BaseModel):
    user_id: str
    items: List[CartSnapshotItem]
    total_amount_cents: Optional[int] = None


_snapshot_adapter = TypeAdapter(List[CartSnapshotItem])


# module backend.payments.metadata
def encode_snapshot(items: List[CartSnapshotItem]) -> str:
    payload = [item.model_dump(by_alias=True, exclude_none=True) for item in items]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def make_metadata(user_id: str, items: List[CartSnapshotItem], total_amount_cents: int) -> Dict[str, str]:
    """
    Construit les métadonnées de session.
    - Soulève MetadataTooLarge si l'instantané ne tient pas dans les limites Stripe
      (pas de troncature: elle casserait la réconciliation).
    """
    encoded = encode_snapshot(items)
    chunks = [encoded[i:i + STRIPE_METADATA_MAX_VALUE] for i in range(0, len(encoded), STRIPE_METADATA_MAX_VALUE)]
    if len(chunks) > STRIPE_METADATA_MAX_KEYS - len(RESERVED_KEYS):
        raise MetadataTooLarge()

    metadata = {
        "user_id": str(user_id),
        "total_amount_cents": str(int(total_amount_cents)),
        "cart_chunks": str(len(chunks)),
    }
    for index, chunk in enumerate(chunks):
        metadata[f"{CART_KEY_PREFIX}{index}"] = chunk
    return metadata


def extract_metadata(session: Dict[str, Any]) -> CheckoutMetadata:
    """
    Extrait (user_id, instantané panier, total) depuis une session Checkout.
    - Strict: toute forme inattendue soulève MissingMetadata (rejouer ne la corrigera pas).
    """
    meta = (session or {}).get("metadata") or {}
    user_id = str(meta.get("user_id") or "").strip()
    if not user_id:
        raise MissingMetadata("missing user_id")

    try:
        chunk_count = int(meta.get("cart_chunks"))
    except (TypeError, ValueError):
        raise MissingMetadata("missing cart snapshot")
    if chunk_count <= 0:
        raise MissingMetadata("empty cart snapshot")

    parts = []
    for index in range(chunk_count):
        part = meta.get(f"{CART_KEY_PREFIX}{index}")
        if part is None:
            raise MissingMetadata(f"missing cart fragment {index}")
        parts.append(part)

    try:
        items = _snapshot_adapter.validate_python(json.loads("".join(parts)))
    except (ValueError, ValidationError) as e:
        raise MissingMetadata("malformed cart snapshot") from e
    if not items:
        raise MissingMetadata("empty cart snapshot")

    total = meta.get("total_amount_cents")
    try:
        total_amount_cents = int(total) if total not in (None, "") else None
    except ValueError:
        total_amount_cents = None

    return CheckoutMetadata(user_id=user_id, items=items, total_amount_cents=total_amount_cents)
