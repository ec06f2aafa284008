"""
Factory d'application recommandée pour les entrypoints (ex: backend.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
import logging
from typing import Optional

from fastapi import FastAPI

from backend.config import Settings, load_settings
from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import (
    register_basic_middlewares,
    register_force_https_middleware,
    register_security_middleware,
)
from .routers import register_routers

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS, hosts, proxy) et en-têtes de sécurité
      - gestionnaires d'exceptions ({error, code})
      - tous les routers (API v1, health)
      - redirection HTTPS en dernier (s'exécute en premier)
    - settings: injecté par les tests; sinon lu depuis l'environnement (.env)
    """
    settings = settings or load_settings()
    app = FastAPI(title="Logic Labs Storefront API", lifespan=lifespan)
    app.state.settings = settings
    register_basic_middlewares(app, settings)
    register_security_middleware(app, settings)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app, settings)
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET missing: webhook deliveries will fail")
    return app
