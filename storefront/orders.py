import random
import time
from decimal import Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config import Settings
from storefront.errors import InvalidStateError, NotFoundError
from storefront.models import Cart, CartItem, Order, OrderItem, OrderStatus, Product, ShippingAddress
from storefront.refunds import quantize_money

logger = structlog.get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 3

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.REFUNDED, OrderStatus.CANCELLED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
    OrderStatus.COMPLETED: set(),
}

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)

# Only reached through payment completion and refund accounting
PAYMENT_DRIVEN_STATUSES = (OrderStatus.PROCESSING, OrderStatus.REFUNDED)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


def transition_order(order: Order, target: OrderStatus) -> bool:
    """Move the order to ``target`` if the state machine allows it. The caller commits."""
    if not can_transition(order.status, target):
        logger.warning(
            "order_transition_rejected",
            order_id=order.id,
            current=order.status.value,
            target=target.value,
        )
        return False
    order.status = target
    return True


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"


class OrderService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def create_order(self, user_id: str, shipping_address_id: str, items: list[dict], notes: str | None = None) -> Order:
        """Price the requested items, persist the order and empty the user's cart in one commit.

        ``items`` is a list of ``{"product_id": ..., "quantity": ...}``.
        """
        self._get_owned_address(user_id, shipping_address_id)

        priced_items = []
        subtotal = Decimal("0")
        for item in items:
            product = self.db.get(Product, item["product_id"])
            if product is None:
                raise NotFoundError(f"Product with ID {item['product_id']} not found")
            if not product.is_active:
                raise InvalidStateError(f'Product "{product.name}" is not available')

            quantity = item["quantity"]
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise InvalidStateError("Quantity must be a positive integer")

            price = Decimal(product.price)
            line_total = price * quantity
            subtotal += line_total
            priced_items.append((product.id, quantity, price, line_total))

        tax, shipping_cost, total = self.compute_totals(subtotal)

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order = Order(
                order_number=generate_order_number(),
                user_id=user_id,
                status=OrderStatus.PENDING,
                subtotal=subtotal,
                tax=tax,
                shipping_cost=shipping_cost,
                total=total,
                shipping_address_id=shipping_address_id,
                notes=notes,
                items=[
                    OrderItem(product_id=product_id, position=position, quantity=quantity, price=price, total=line_total)
                    for position, (product_id, quantity, price, line_total) in enumerate(priced_items)
                ],
            )
            try:
                self.db.add(order)
                self._clear_cart(user_id)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning("order_number_collision", order_number=order.order_number, attempt=attempt)
                continue
            except Exception:
                self.db.rollback()
                raise
            break

        self.db.refresh(order)
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            total=str(order.total),
        )
        return order

    def compute_totals(self, subtotal: Decimal) -> tuple[Decimal, Decimal, Decimal]:
        tax = quantize_money(subtotal * self.settings.tax_rate)
        if subtotal > self.settings.free_shipping_threshold:
            shipping_cost = Decimal("0")
        else:
            shipping_cost = self.settings.shipping_flat_fee
        return tax, shipping_cost, subtotal + tax + shipping_cost

    def list_orders(self, user_id: str) -> list[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .all()
        )

    def get_order(self, user_id: str, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).first()
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def get_order_by_number(self, user_id: str, order_number: str) -> Order:
        order = (
            self.db.query(Order)
            .filter(Order.order_number == order_number, Order.user_id == user_id)
            .first()
        )
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def update_order(self, user_id: str, order_id: str, shipping_address_id: str | None = None, notes: str | None = None) -> Order:
        order = self.get_order(user_id, order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError("Only pending orders can be modified")

        if shipping_address_id is not None:
            self._get_owned_address(user_id, shipping_address_id)
            order.shipping_address_id = shipping_address_id
        if notes is not None:
            order.notes = notes

        self.db.commit()
        self.db.refresh(order)
        return order

    def update_status(self, user_id: str, order_id: str, status: OrderStatus) -> Order:
        order = self.get_order(user_id, order_id)
        if status in PAYMENT_DRIVEN_STATUSES:
            raise InvalidStateError(f"Order status {status.value} is set by payment events")
        if not can_transition(order.status, status):
            raise InvalidStateError(
                f"Cannot change order status from {order.status.value} to {status.value}"
            )
        order.status = status
        self.db.commit()
        self.db.refresh(order)
        logger.info("order_status_changed", order_id=order.id, status=status.value)
        return order

    def cancel_order(self, user_id: str, order_id: str) -> Order:
        order = self.get_order(user_id, order_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError("Only pending or processing orders can be cancelled")

        order.status = OrderStatus.CANCELLED
        self.db.commit()
        self.db.refresh(order)
        logger.info("order_cancelled", order_id=order.id, user_id=user_id)
        return order

    def _get_owned_address(self, user_id: str, address_id: str) -> ShippingAddress:
        address = (
            self.db.query(ShippingAddress)
            .filter(ShippingAddress.id == address_id, ShippingAddress.user_id == user_id)
            .first()
        )
        if address is None:
            raise NotFoundError("Shipping address not found")
        return address

    def _clear_cart(self, user_id: str) -> None:
        cart = self.db.query(Cart).filter(Cart.user_id == user_id).first()
        if cart is not None:
            self.db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
