# module backend.cart.views
"""Endpoints du panier (utilisateur authentifié uniquement)."""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from backend.app_setup.dependencies import get_cart_repository, get_catalog_repository
from backend.catalog.repository import CatalogRepository
from backend.utils.security import require_user
from . import service as cart_service
from .models import AddCartItemRequest, UpdateCartItemRequest
from .repository import CartRepository

router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


@router.get("")
def get_cart(
    user: Dict[str, Any] = Depends(require_user),
    cart_repo: CartRepository = Depends(get_cart_repository),
):
    return cart_service.get_cart(user["id"], cart_repo)


@router.post("/items")
def add_cart_item(
    body: AddCartItemRequest,
    user: Dict[str, Any] = Depends(require_user),
    cart_repo: CartRepository = Depends(get_cart_repository),
    catalog_repo: CatalogRepository = Depends(get_catalog_repository),
):
    item = cart_service.add_item(user["id"], body.product_id, body.quantity, cart_repo, catalog_repo)
    return {"item": item.model_dump()}


@router.patch("/items/{cart_item_id}")
def update_cart_item(
    cart_item_id: str,
    body: UpdateCartItemRequest,
    user: Dict[str, Any] = Depends(require_user),
    cart_repo: CartRepository = Depends(get_cart_repository),
):
    return cart_service.update_quantity(user["id"], cart_item_id, body.quantity, cart_repo)


@router.delete("/items/{cart_item_id}")
def delete_cart_item(
    cart_item_id: str,
    user: Dict[str, Any] = Depends(require_user),
    cart_repo: CartRepository = Depends(get_cart_repository),
):
    cart_service.remove_item(user["id"], cart_item_id, cart_repo)
    return {"removed": True}


@router.delete("")
def clear_cart(
    user: Dict[str, Any] = Depends(require_user),
    cart_repo: CartRepository = Depends(get_cart_repository),
):
    return {"cleared": cart_service.clear_cart(user["id"], cart_repo)}
