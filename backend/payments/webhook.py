"""
Réconciliation des webhooks Stripe Checkout en commandes durables.

Cycle par session Stripe (clé: session.id):
- Inconnue -> Enregistrée: commande + lignes insérées, lignes de panier capturées
  supprimées, reçu récupéré, email de confirmation envoyé (une seule fois).
- Enregistrée -> Enregistrée (redélivrance): statut/reçu rafraîchis, rien d'autre.
- Métadonnées manquantes -> Rejetée: journalisée et acquittée (200) sans traitement.

Les lignes achetées sont reconstruites depuis l'instantané des metadata et
Stripe list_line_items; jamais depuis le panier courant.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import logging

from backend.config import Settings
from backend.errors import InvalidSignature, MissingMetadata, PaymentProcessorError
from backend.orders.models import OrderLine, RecordResult
from backend.orders.notifications import send_order_confirmation
from backend.orders.repository import OrderRepository
from .cart import from_minor_units
from .metadata import CartSnapshotItem, CheckoutMetadata, extract_metadata
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)

COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
HANDLED_EVENTS = (COMPLETED, ASYNC_PAYMENT_SUCCEEDED)
PAID_STATUSES = ("paid", "no_payment_required")
RECORDED_STATUS = "processing"


def _line_price_ref(line: Dict[str, Any]) -> Optional[str]:
    price = line.get("price")
    if isinstance(price, dict):
        return price.get("id")
    return price if isinstance(price, str) else None


def _unit_amount(line: Dict[str, Any], quantity: int) -> Optional[int]:
    subtotal = line.get("amount_subtotal")
    if not isinstance(subtotal, int) or quantity <= 0:
        return None
    return int((Decimal(subtotal) / quantity).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_order_lines(
    snapshot: List[CartSnapshotItem],
    processor_lines: Optional[List[Dict[str, Any]]],
) -> List[OrderLine]:
    """
    Réconcilie l'instantané (metadata) avec les lignes facturées par Stripe.
    - processor_lines vide ou None (appel Stripe en échec): instantané seul, montants de l'instantané.
    - Appariement: référence de prix d'abord, puis positionnel parmi les entrées
      restantes (quantité identique en priorité).
    - Montant: le sous-total facturé par Stripe (amount_subtotal) fait foi pour la
      ligne; unit_amount (arrondi au centime) ne sert qu'à l'affichage. Sans
      sous-total Stripe: montant unitaire de l'instantané.
    """
    if not processor_lines:
        return [
            OrderLine(
                product_id=item.product_id,
                product_name=item.name,
                quantity=item.quantity,
                unit_amount=item.unit_amount,
                cart_item_id=item.cart_item_id,
            )
            for item in snapshot
        ]

    remaining = list(range(len(snapshot)))
    matches: List[Optional[int]] = [None] * len(processor_lines)

    for line_index, line in enumerate(processor_lines):
        ref = _line_price_ref(line)
        if not ref:
            continue
        for snap_index in remaining:
            if snapshot[snap_index].price_ref == ref:
                matches[line_index] = snap_index
                remaining.remove(snap_index)
                break

    for line_index, line in enumerate(processor_lines):
        if matches[line_index] is not None or not remaining:
            continue
        quantity = line.get("quantity")
        snap_index = next((i for i in remaining if snapshot[i].quantity == quantity), remaining[0])
        matches[line_index] = snap_index
        remaining.remove(snap_index)

    lines: List[OrderLine] = []
    for line, snap_index in zip(processor_lines, matches):
        if snap_index is None:
            logger.error("payments.webhook unmatched processor line description=%s", line.get("description"))
            continue
        item = snapshot[snap_index]
        quantity = line.get("quantity") or item.quantity
        unit_amount = _unit_amount(line, quantity)
        line_amount = line.get("amount_subtotal") if unit_amount is not None else None
        if unit_amount is None:
            unit_amount = item.unit_amount
        elif unit_amount != item.unit_amount:
            logger.info(
                "payments.webhook processor amount differs product_id=%s quoted=%s charged=%s",
                item.product_id, item.unit_amount, unit_amount,
            )
        lines.append(OrderLine(
            product_id=item.product_id,
            product_name=item.name or line.get("description") or "",
            quantity=quantity,
            unit_amount=unit_amount,
            line_amount=line_amount,
            cart_item_id=item.cart_item_id,
        ))

    if remaining:
        logger.warning(
            "payments.webhook snapshot entries without processor line product_ids=%s",
            [snapshot[i].product_id for i in remaining],
        )
    return lines


def _fetch_processor_lines(stripe_gateway: StripeGateway, session_id: str) -> Optional[List[Dict[str, Any]]]:
    try:
        return stripe_gateway.list_line_items(session_id)
    except PaymentProcessorError:
        logger.warning("payments.webhook list_line_items failed session_id=%s, using metadata amounts", session_id)
        return None


def _fetch_receipt_url(stripe_gateway: StripeGateway, payment_intent_id: Optional[str]) -> Optional[str]:
    if not payment_intent_id:
        return None
    try:
        return stripe_gateway.retrieve_receipt_url(payment_intent_id)
    except PaymentProcessorError:
        logger.warning("payments.webhook receipt lookup failed payment_intent=%s", payment_intent_id)
        return None


def _payment_intent_id(session: Dict[str, Any]) -> Optional[str]:
    intent = session.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("id")
    return intent or None


def _shipping_address(session: Dict[str, Any], customer_email: Optional[str]) -> Optional[Dict[str, Any]]:
    details = session.get("customer_details")
    shipping = session.get("shipping_details") or {}
    if not details and not shipping:
        return None
    details = details or {}
    return {
        "name": shipping.get("name") or details.get("name"),
        "email": customer_email,
        "phone": details.get("phone"),
        "address": shipping.get("address") or details.get("address"),
    }


def _total_amount_minor(session: Dict[str, Any], meta: CheckoutMetadata, lines: List[OrderLine]) -> int:
    if isinstance(session.get("amount_total"), int):
        return session["amount_total"]
    if meta.total_amount_cents is not None:
        return meta.total_amount_cents
    return sum(line.subtotal_amount for line in lines)


def reconcile_checkout_session(
    session: Dict[str, Any],
    meta: CheckoutMetadata,
    *,
    stripe_gateway: StripeGateway,
    order_repo: OrderRepository,
    mailer,
    settings: Settings,
) -> RecordResult:
    """
    Enregistre la commande d'une session payée (idempotent par session.id).
    Les appels Stripe précèdent l'écriture unique en base: un crash entre deux
    étapes est rattrapé par la redélivrance du webhook.
    """
    session_id = session["id"]
    lines = build_order_lines(meta.items, _fetch_processor_lines(stripe_gateway, session_id))
    total_minor = _total_amount_minor(session, meta, lines)
    items_minor = sum(line.subtotal_amount for line in lines)
    if abs(items_minor - total_minor) > 1:
        logger.warning(
            "payments.webhook total mismatch session_id=%s items=%s total=%s",
            session_id, items_minor, total_minor,
        )

    payment_intent_id = _payment_intent_id(session)
    receipt_url = _fetch_receipt_url(stripe_gateway, payment_intent_id)
    customer_email = (session.get("customer_details") or {}).get("email") or session.get("customer_email")
    currency = (session.get("currency") or settings.default_currency).lower()

    order_fields = {
        "user_id": meta.user_id,
        "total_amount": str(from_minor_units(total_minor)),
        "currency": currency,
        "status": RECORDED_STATUS,
        "shipping_address": _shipping_address(session, customer_email),
        "customer_email": customer_email,
        "stripe_payment_intent_id": payment_intent_id,
        "receipt_url": receipt_url,
    }
    items = [
        {
            "product_id": line.product_id,
            "product_name": line.product_name,
            "quantity": line.quantity,
            "price": str(line.price),
        }
        for line in lines
    ]
    captured_items = [
        {"id": line.cart_item_id, "quantity": line.quantity}
        for line in lines
        if line.cart_item_id
    ]

    result = order_repo.record_checkout_order(
        session_id=session_id,
        order_fields=order_fields,
        items=items,
        captured_items=captured_items,
    )
    if not result.created:
        logger.info("payments.webhook duplicate session_id=%s order_id=%s refreshed", session_id, result.order_id)
        return result

    logger.info(
        "payments.webhook recorded session_id=%s order_id=%s user_id=%s lines=%s total_cents=%s",
        session_id, result.order_id, meta.user_id, len(lines), total_minor,
    )
    if payment_intent_id:
        try:
            stripe_gateway.tag_payment_intent(payment_intent_id, result.order_id, receipt_email=customer_email)
        except PaymentProcessorError:
            logger.warning("payments.webhook tag_payment_intent failed payment_intent=%s", payment_intent_id)

    send_order_confirmation(
        mailer,
        to=customer_email,
        subject=settings.order_email_subject,
        order_id=result.order_id,
        created_at=result.created_at,
        lines=lines,
        total_amount_minor=total_minor,
        currency=currency,
        receipt_url=receipt_url,
    )
    return result


def handle_stripe_webhook(
    payload: bytes,
    signature: Optional[str],
    *,
    stripe_gateway: StripeGateway,
    order_repo: OrderRepository,
    mailer,
    settings: Settings,
) -> Dict[str, Any]:
    """
    Point d'entrée du webhook.
    - Signature invalide/absente: InvalidSignature (400), aucune écriture.
    - Événements non gérés: {"status": "ignored"}.
    - Métadonnées absentes ou identifiants refusés par la base:
      {"status": "rejected"} (acquitté, ne pas rejouer).
    - Toute autre erreur remonte (500 => Stripe redélivrera).
    """
    if not signature:
        raise InvalidSignature("Missing stripe signature")
    event = stripe_gateway.construct_event(payload, signature)
    event_type = event.get("type")
    event_id = event.get("id")

    if event_type not in HANDLED_EVENTS:
        logger.info("payments.webhook ignored event_id=%s type=%s", event_id, event_type)
        return {"received": True, "status": "ignored"}

    session = (event.get("data") or {}).get("object") or {}
    session_id = session.get("id")
    if event_type == COMPLETED and session.get("payment_status") not in PAID_STATUSES:
        logger.info("payments.webhook awaiting payment session_id=%s status=%s", session_id, session.get("payment_status"))
        return {"received": True, "status": "awaiting_payment"}

    try:
        if not session_id:
            raise MissingMetadata("missing session id")
        meta = extract_metadata(session)
        result = reconcile_checkout_session(
            session,
            meta,
            stripe_gateway=stripe_gateway,
            order_repo=order_repo,
            mailer=mailer,
            settings=settings,
        )
    except MissingMetadata as e:
        logger.warning("payments.webhook rejected event_id=%s session_id=%s reason=%s", event_id, session_id, e)
        return {"received": True, "status": "rejected"}
    return {
        "received": True,
        "status": "recorded" if result.created else "duplicate",
        "order_id": result.order_id,
    }
