import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from backend.app_setup.dependencies import get_service_db
from backend.utils.rate_limit import rate_limit_health_info

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root():
    return {"ok": True}


@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)


@router.get("/supabase")
def health_supabase(db=Depends(get_service_db)):
    try:
        db.table("products").select("id").limit(1).execute()
    except Exception as e:
        logger.warning("health.supabase unreachable: %s", type(e).__name__)
        return JSONResponse(status_code=503, content={"ok": False})
    return {"ok": True}
