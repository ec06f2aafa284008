"""
Email de confirmation de commande (rendu jinja2 + envoi via le mailer).
- Best effort: un échec d'envoi est journalisé et ne fait jamais échouer la réconciliation.
"""
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import OrderLine

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£", "cad": "CA$", "aud": "A$"}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
)


def format_money(amount_minor: int, currency: str) -> str:
    amount = Decimal(int(amount_minor)) / 100
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower())
    if symbol:
        return f"{symbol}{amount:,.2f}"
    return f"{amount:,.2f} {(currency or '').upper()}"


def render_order_confirmation(
    *,
    order_id: str,
    created_at: Optional[str],
    lines: List[OrderLine],
    total_amount_minor: int,
    currency: str,
    receipt_url: Optional[str],
) -> Tuple[str, str]:
    """Retourne (html, text) pour l'email de confirmation."""
    context: Dict[str, Any] = {
        "order_id": order_id,
        "created_at": created_at,
        "lines": [
            {
                "name": line.product_name or "Item",
                "quantity": line.quantity,
                "subtotal": format_money(line.subtotal_amount, currency),
            }
            for line in lines
        ],
        "total": format_money(total_amount_minor, currency),
        "receipt_url": receipt_url,
    }
    html = _env.get_template("order_confirmation.html").render(**context)
    text = _env.get_template("order_confirmation.txt").render(**context)
    return html, text


def send_order_confirmation(mailer, *, to: Optional[str], subject: str, **order: Any) -> bool:
    """
    Envoie l'email de confirmation.
    - Retourne True si l'envoi a été accepté, False sinon (destinataire absent, erreur).
    """
    if not to:
        logger.info("orders.notifications no recipient order_id=%s", order.get("order_id"))
        return False
    try:
        html, text = render_order_confirmation(**order)
        mailer.send_email(to=to, subject=subject, html=html, text=text)
        logger.info("orders.notifications confirmation sent order_id=%s", order.get("order_id"))
        return True
    except Exception:
        logger.exception("orders.notifications confirmation failed order_id=%s", order.get("order_id"))
        return False
