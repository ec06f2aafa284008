# module backend.orders.views
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from backend.app_setup.dependencies import get_order_repository
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.security import require_user
from .repository import OrderRepository
from .service import get_order_for_user

router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])
_limit = [Depends(optional_rate_limit(times=60, seconds=60))]


class OrderBySessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: str = Field(min_length=1)


@router.get("/by-session", dependencies=_limit)
def get_order_by_session(
    session_id: str = Query(..., min_length=1),
    user: Dict[str, Any] = Depends(require_user),
    order_repo: OrderRepository = Depends(get_order_repository),
):
    """
    Détail d'une commande par id de session Stripe (page de succès).
    - 404 order_not_found tant que le webhook n'a pas enregistré la commande
    - 403 forbidden si la commande appartient à un autre compte
    """
    order = get_order_for_user(session_id, user, order_repo)
    return {"order": order.to_public()}


@router.post("/by-session", dependencies=_limit)
def post_order_by_session(
    body: OrderBySessionRequest,
    user: Dict[str, Any] = Depends(require_user),
    order_repo: OrderRepository = Depends(get_order_repository),
):
    order = get_order_for_user(body.session_id, user, order_repo)
    return {"order": order.to_public()}
