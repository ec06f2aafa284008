"""
Adaptateur Stripe: centralise les appels Stripe.
- La clé API est passée à chaque appel (api_key=...), jamais posée sur le module global.
- Toutes les réponses sont converties en dict (StripeObject -> dict récursif).
- Les erreurs Stripe sont converties en PaymentProcessorError; une signature
  webhook invalide en InvalidSignature.
"""
import logging
from typing import Any, Dict, List, Optional

import stripe

from backend.errors import InvalidSignature, PaymentProcessorError

logger = logging.getLogger(__name__)


def _to_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)


# module backend.payments.stripe_client
class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str = ""):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def find_customer_id(self, email: str) -> Optional[str]:
        """Retourne l'id du premier client Stripe portant cet email, sinon None."""
        try:
            res = stripe.Customer.list(email=email, limit=1, api_key=self.api_key)
        except stripe.StripeError as e:
            raise PaymentProcessorError() from e
        data = _to_dict(res).get("data") or []
        return data[0].get("id") if data else None

    def create_checkout_session(self, **params: Any) -> Dict[str, Any]:
        """
        Crée une session Stripe Checkout.
        - params: line_items, mode, success_url, cancel_url, metadata, customer|customer_email, ...
        Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
        """
        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error("payments.stripe create_checkout_session failed: %s", getattr(e, "user_message", None) or e)
            raise PaymentProcessorError() from e
        return _to_dict(session)

    def list_line_items(self, session_id: str) -> List[Dict[str, Any]]:
        """
        Lignes facturées par Stripe pour une session (toutes pages).
        Chaque ligne: {"price": {"id": ...}, "quantity": q, "amount_subtotal": ..., "description": ...}
        """
        try:
            page = stripe.checkout.Session.list_line_items(session_id, limit=100, api_key=self.api_key)
            return [_to_dict(line) for line in page.auto_paging_iter()]
        except stripe.StripeError as e:
            raise PaymentProcessorError() from e

    def retrieve_receipt_url(self, payment_intent_id: str) -> Optional[str]:
        """
        URL du reçu Stripe via PaymentIntent.latest_charge (expand), sinon None.
        """
        try:
            intent = _to_dict(stripe.PaymentIntent.retrieve(
                payment_intent_id, expand=["latest_charge"], api_key=self.api_key
            ))
            charge = intent.get("latest_charge")
            if isinstance(charge, str):
                charge = _to_dict(stripe.Charge.retrieve(charge, api_key=self.api_key))
            if isinstance(charge, dict):
                return charge.get("receipt_url")
            return None
        except stripe.StripeError as e:
            raise PaymentProcessorError() from e

    def tag_payment_intent(self, payment_intent_id: str, order_id: str, receipt_email: Optional[str] = None) -> None:
        """Ajoute order_id aux metadata du PaymentIntent (et receipt_email si fourni)."""
        params: Dict[str, Any] = {"metadata": {"order_id": order_id}}
        if receipt_email:
            params["receipt_email"] = receipt_email
        try:
            stripe.PaymentIntent.modify(payment_intent_id, api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise PaymentProcessorError() from e

    def construct_event(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Valide la signature (corps brut + en-tête Stripe-Signature) et retourne l'événement.
        - Secret absent: erreur de configuration (500 => Stripe redélivrera).
        """
        if not self.webhook_secret:
            raise RuntimeError("STRIPE_WEBHOOK_SECRET manquant")
        try:
            event = stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("payments.stripe webhook signature verification failed: %s", e)
            raise InvalidSignature() from e
        return _to_dict(event)
