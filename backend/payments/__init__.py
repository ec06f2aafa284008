"""
Module 'payments' (feature-first): point d'entrée public.
Réunit logique panier -> line_items, metadata Stripe, client Stripe, checkout et webhook.
"""

from .cart import select_cart_rows, to_line_items, to_minor_units, from_minor_units
from .metadata import CartSnapshotItem, CheckoutMetadata, make_metadata, extract_metadata
from .stripe_client import StripeGateway
from .service import create_checkout_session
from .webhook import build_order_lines, handle_stripe_webhook, reconcile_checkout_session

__all__ = [
    # cart
    "select_cart_rows",
    "to_line_items",
    "to_minor_units",
    "from_minor_units",
    # metadata
    "CartSnapshotItem",
    "CheckoutMetadata",
    "make_metadata",
    "extract_metadata",
    # stripe
    "StripeGateway",
    # services
    "create_checkout_session",
    "build_order_lines",
    "reconcile_checkout_session",
    "handle_stripe_webhook",
]
