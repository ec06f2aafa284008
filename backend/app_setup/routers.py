"""
Registre central des routers (API v1 + health).
- API v1: cart, payments (checkout + webhook), orders
- Health: health_router
"""
from fastapi import FastAPI
from backend.cart import views as cart_views
from backend.payments import views as payments_views
from backend.orders import views as orders_views
from backend.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(cart_views.router)
    app.include_router(payments_views.router)
    app.include_router(orders_views.router)
    # Health & monitoring
    app.include_router(health_router)
