# module backend.app
import logging
import os

from backend.app_setup.factory import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "info").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# App globale (process managers: backend.asgi:app)
app = create_app()
