import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront import stripe_service
from storefront.config import Settings
from storefront.errors import NotFoundError
from storefront.line_items import LineItemBuilder
from storefront.models import OrderStatus, Payment, PaymentMethod, PaymentStatus
from storefront.orders import OrderService, transition_order
from storefront.refunds import calculate_refund, quantize_money, success_message, to_cents
from storefront.schemas import PaymentMetadata, RefundRecord
from storefront.validators import (
    validate_not_completed,
    validate_payment_intent,
    validate_refund_amount,
    validate_refundable,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RefundSummary:
    message: str
    refunded_amount: Decimal
    total_refunded: Decimal
    refund_id: str


def generate_idempotency_key(order_id: str) -> str:
    return f"order_{order_id}_{int(time.time() * 1000)}"


def refund_idempotency_key(payment_id: str, already_refunded, amount) -> str:
    # Same payment, same refunded balance, same amount: a retry, not a new refund
    return f"refund_{payment_id}_{to_cents(already_refunded)}_{to_cents(amount)}"


class PaymentService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.orders = OrderService(db, settings)
        self.line_items = LineItemBuilder.from_settings(settings)

    def create_checkout_session(
        self,
        user_id: str,
        order_id: str,
        success_url: str,
        cancel_url: str,
        ip_address: str | None = None,
    ) -> dict:
        order = self.orders.get_order(user_id, order_id)
        payment = self._find_payment(order.id)
        validate_not_completed(payment)

        session = stripe_service.create_checkout_session(
            order_id=order.id,
            order_number=order.order_number,
            amount=to_cents(order.total),
            currency=self.settings.currency.lower(),
            customer_email=order.user.email if order.user else None,
            line_items=self.line_items.build_line_items(order),
            success_url=success_url,
            cancel_url=cancel_url,
        )
        payment_intent_id = self._payment_intent_of(session)

        if payment is None:
            payment = Payment(
                order_id=order.id,
                amount=order.total,
                currency=self.settings.currency,
                method=PaymentMethod.STRIPE,
                idempotency_key=generate_idempotency_key(order.id),
                refunded_amount=Decimal("0"),
            )
            self._apply_session(payment, session, payment_intent_id, ip_address)
            self.db.add(payment)
            try:
                self.db.commit()
            except IntegrityError:
                # Another request inserted the row for this order first
                self.db.rollback()
                payment = self._find_payment(order.id)
                if payment is None:
                    raise
                validate_not_completed(payment)
                self._apply_session(payment, session, payment_intent_id, ip_address)
                self.db.commit()
        else:
            self._apply_session(payment, session, payment_intent_id, ip_address)
            self.db.commit()

        logger.info(
            "checkout_session_created",
            order_id=order.id,
            payment_id=payment.id,
            session_id=session.id,
        )
        return {"session_id": session.id, "url": session.url}

    def get_payment_by_order(self, user_id: str, order_id: str) -> Payment:
        order = self.orders.get_order(user_id, order_id)
        payment = self._find_payment(order.id)
        if payment is None:
            raise NotFoundError("Payment not found for this order")
        return payment

    def refund_payment(self, order_id: str, user_id: str, amount=None, reason: str | None = None) -> RefundSummary:
        order = self.orders.get_order(user_id, order_id)
        payment = self._find_payment(order.id)
        if payment is None:
            raise NotFoundError("Payment not found for this order")

        validate_refundable(payment)
        # Stripe refunds whole cents, so the ledger must record the same amount
        if amount is not None:
            amount = quantize_money(amount)
        calculation = calculate_refund(amount, payment.amount, payment.refunded_amount)
        validate_refund_amount(calculation.amount_to_refund, payment.refunded_amount, payment.amount)

        payment_intent_id = self._resolve_payment_intent(payment)
        validate_payment_intent(payment_intent_id)

        refund = stripe_service.create_refund(
            payment_intent_id,
            amount=to_cents(calculation.amount_to_refund),
            reason=reason,
            idempotency_key=refund_idempotency_key(
                payment.id, payment.refunded_amount, calculation.amount_to_refund
            ),
        )

        now = datetime.now(timezone.utc)
        metadata = PaymentMetadata.load(payment.payment_metadata).with_refund(
            RefundRecord(
                refund_id=refund.id,
                amount=calculation.amount_to_refund,
                reason=reason,
                created_at=now,
            )
        )
        payment.provider_payment_id = payment_intent_id
        payment.refunded_amount = calculation.total_refunded
        payment.status = calculation.new_status
        payment.refunded_at = now
        payment.payment_metadata = metadata.dump()

        if calculation.is_fully_refunded:
            transition_order(order, OrderStatus.REFUNDED)

        self.db.commit()
        logger.info(
            "refund_issued",
            order_id=order.id,
            payment_id=payment.id,
            refund_id=refund.id,
            amount=str(calculation.amount_to_refund),
            total_refunded=str(calculation.total_refunded),
            fully_refunded=calculation.is_fully_refunded,
        )

        return RefundSummary(
            message=success_message(calculation.is_fully_refunded),
            refunded_amount=calculation.amount_to_refund,
            total_refunded=calculation.total_refunded,
            refund_id=refund.id,
        )

    def _find_payment(self, order_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.order_id == order_id).first()

    def _apply_session(self, payment: Payment, session, payment_intent_id: str | None, ip_address: str | None) -> None:
        metadata = PaymentMetadata.load(payment.payment_metadata).model_copy(
            update={"session_id": session.id, "session_url": session.url}
        )
        payment.transaction_id = session.id
        payment.provider_payment_id = payment_intent_id
        payment.status = PaymentStatus.PENDING
        payment.failure_reason = None
        payment.ip_address = ip_address
        payment.payment_metadata = metadata.dump()

    def _resolve_payment_intent(self, payment: Payment) -> str | None:
        if payment.provider_payment_id:
            return payment.provider_payment_id
        if not payment.transaction_id:
            return None
        session = stripe_service.retrieve_session(payment.transaction_id)
        return self._payment_intent_of(session)

    @staticmethod
    def _payment_intent_of(session) -> str | None:
        payment_intent = getattr(session, "payment_intent", None)
        if payment_intent is None or isinstance(payment_intent, str):
            return payment_intent
        # expanded PaymentIntent object
        return payment_intent.id
