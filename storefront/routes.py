import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from storefront import stripe_service
from storefront.auth import CurrentUser, get_current_user
from storefront.config import get_settings
from storefront.database import get_db
from storefront.orders import OrderService
from storefront.payments import PaymentService
from storefront.schemas import (
    CheckoutRequest,
    CheckoutSessionResponse,
    CreateOrderRequest,
    OrderResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
    UpdateOrderRequest,
    UpdateOrderStatusRequest,
)
from storefront.webhooks import WebhookReconciler

order_router = APIRouter(prefix="/orders", tags=["orders"])
payment_router = APIRouter(prefix="/payment", tags=["payment"])


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db, get_settings())


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db, get_settings())


@order_router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    request: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.create_order(
        user.id,
        request.shipping_address_id,
        [item.model_dump() for item in request.items],
        request.notes,
    )


@order_router.get("", response_model=list[OrderResponse])
def list_orders(
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.list_orders(user.id)


@order_router.get("/number/{order_number}", response_model=OrderResponse)
def get_order_by_number(
    order_number: str,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.get_order_by_number(user.id, order_number)


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.get_order(user.id, order_id)


@order_router.put("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: str,
    request: UpdateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.update_order(user.id, order_id, request.shipping_address_id, request.notes)


@order_router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.update_status(user.id, order_id, request.status)


@order_router.patch("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    return orders.cancel_order(user.id, order_id)


@payment_router.post("/checkout", response_model=CheckoutSessionResponse, status_code=201)
def create_checkout_session(
    request: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.create_checkout_session(
        user.id,
        request.order_id,
        request.success_url,
        request.cancel_url,
        request.ip_address,
    )


@payment_router.get("/order/{order_id}", response_model=PaymentResponse)
def get_payment_by_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.get_payment_by_order(user.id, order_id)


@payment_router.post("/refund/{order_id}", response_model=RefundResponse)
def refund_payment(
    order_id: str,
    request: RefundRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
):
    # No body refunds the remaining balance
    request = request or RefundRequest()
    return payments.refund_payment(order_id, user.id, request.amount, request.reason)


@payment_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    payload = await request.body()

    try:
        event = stripe_service.construct_event(payload, stripe_signature)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    return WebhookReconciler(db).handle_event(event)
