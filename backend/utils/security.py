from fastapi import Depends, Request
from typing import Any, Dict, Optional
import logging

from backend.app_setup.dependencies import get_auth_client
from backend.errors import Unauthenticated

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


def resolve_user(auth_client, token: str) -> Dict[str, Any]:
    """
    Résout un access token Supabase en {id, email}.
    - Toute erreur du service d'auth (jeton expiré, réseau) => Unauthenticated.
    """
    try:
        res = auth_client.auth.get_user(token)
    except Exception as e:
        logger.info("security: token rejected by auth service: %s", type(e).__name__)
        raise Unauthenticated("Invalid or expired token") from e
    user = getattr(res, "user", None)
    user_id = getattr(user, "id", None)
    if not user_id:
        raise Unauthenticated("Invalid or expired token")
    return {"id": str(user_id), "email": getattr(user, "email", None)}


def get_current_user(request: Request, auth_client=Depends(get_auth_client)) -> Dict[str, Any]:
    # Bearer uniquement: pas de cookie de session pour l'API
    token = bearer_token(request)
    if not token:
        raise Unauthenticated()
    return resolve_user(auth_client, token)


def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
