import enum
from datetime import datetime, timezone

import structlog
from sqlalchemy.orm import Session

from storefront.errors import NotFoundError
from storefront.models import OrderStatus, Payment, PaymentStatus
from storefront.orders import transition_order

logger = structlog.get_logger(__name__)

# A settled payment is never moved back by a late or replayed event
SETTLED_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)


class WebhookEventType(str, enum.Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class WebhookReconciler:
    def __init__(self, db: Session):
        self.db = db

    def handle_event(self, event: dict) -> dict:
        raw_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}
        logger.info("webhook_received", event_id=event.get("id"), event_type=raw_type)

        match WebhookEventType(raw_type):
            case WebhookEventType.CHECKOUT_SESSION_COMPLETED:
                self._session_completed(data)
            case WebhookEventType.CHECKOUT_SESSION_EXPIRED:
                self._session_expired(data)
            case WebhookEventType.PAYMENT_INTENT_FAILED:
                self._payment_failed(data)
            case _:
                logger.info("webhook_ignored", event_type=raw_type)

        return {"received": True}

    def _session_completed(self, session: dict) -> None:
        payment = self._by_session(session.get("id"))
        if payment is None:
            logger.warning("webhook_unknown_session", session_id=session.get("id"))
            raise NotFoundError("Payment not found for this session")

        if payment.status in SETTLED_STATUSES:
            logger.info("webhook_duplicate_completion", payment_id=payment.id, status=payment.status.value)
            return

        payment.status = PaymentStatus.COMPLETED
        payment.paid_at = datetime.now(timezone.utc)
        payment.failure_reason = None
        if session.get("payment_intent"):
            payment.provider_payment_id = session["payment_intent"]

        if payment.order is not None:
            transition_order(payment.order, OrderStatus.PROCESSING)

        self.db.commit()
        logger.info("payment_completed", payment_id=payment.id, order_id=payment.order_id)

    def _session_expired(self, session: dict) -> None:
        payment = self._by_session(session.get("id"))
        if payment is None or payment.status in SETTLED_STATUSES:
            return

        payment.status = PaymentStatus.FAILED
        self.db.commit()
        logger.info("payment_session_expired", payment_id=payment.id, order_id=payment.order_id)

    def _payment_failed(self, intent: dict) -> None:
        payment_intent_id = intent.get("id")
        if not payment_intent_id:
            return
        payment = self.db.query(Payment).filter(Payment.provider_payment_id == payment_intent_id).first()
        if payment is None or payment.status in SETTLED_STATUSES:
            return

        error = intent.get("last_payment_error") or {}
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = error.get("message") or "Payment failed"
        self.db.commit()
        logger.info(
            "payment_failed",
            payment_id=payment.id,
            order_id=payment.order_id,
            reason=payment.failure_reason,
        )

    def _by_session(self, session_id: str | None) -> Payment | None:
        if not session_id:
            return None
        return self.db.query(Payment).filter(Payment.transaction_id == session_id).first()
