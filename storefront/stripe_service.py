import stripe
import structlog

from storefront.config import get_settings

logger = structlog.get_logger(__name__)

stripe.api_key = get_settings().stripe_secret_key


def create_checkout_session(
    order_id: str,
    order_number: str,
    amount: int,
    currency: str,
    customer_email: str | None,
    line_items: list[dict],
    success_url: str,
    cancel_url: str,
    metadata: dict | None = None,
):
    """Open a hosted checkout session; ``amount`` is in minor units and only logged."""
    logger.info(
        "creating_checkout_session",
        order_id=order_id,
        order_number=order_number,
        amount=amount,
        currency=currency,
    )
    params = {
        "payment_method_types": ["card"],
        "line_items": line_items,
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": {"orderId": order_id, "orderNumber": order_number, **(metadata or {})},
    }
    if customer_email:
        params["customer_email"] = customer_email
    return stripe.checkout.Session.create(**params)


def retrieve_session(session_id: str):
    return stripe.checkout.Session.retrieve(session_id)


def create_refund(
    payment_intent_id: str,
    amount: int | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
):
    params = {"payment_intent": payment_intent_id}
    if amount is not None:
        params["amount"] = amount
    if reason:
        params["reason"] = "requested_by_customer"
        params["metadata"] = {"reason": reason}
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    return stripe.Refund.create(**params)


def construct_event(payload: bytes, signature: str | None) -> dict:
    """Verify the Stripe-Signature header and return the event as a plain dict.

    Raises stripe.SignatureVerificationError on a bad signature or a missing
    webhook secret, and ValueError when the body is not JSON.
    """
    secret = get_settings().stripe_webhook_secret
    if not secret:
        logger.error("webhook_secret_missing")

    event = stripe.Webhook.construct_event(payload, signature, secret)
    return event.to_dict()
