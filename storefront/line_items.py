from storefront.config import Settings
from storefront.models import Order
from storefront.refunds import to_cents, to_decimal


class LineItemBuilder:
    """Turns a priced order into Stripe Checkout line items."""

    def __init__(self, currency: str):
        self.currency = currency.lower()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LineItemBuilder":
        return cls(settings.currency)

    def build_line_items(self, order: Order) -> list[dict]:
        line_items = [self._product_item(item) for item in order.items]

        shipping_cost = to_decimal(order.shipping_cost)
        if shipping_cost > 0:
            line_items.append(self._flat_item("Shipping", shipping_cost))

        tax = to_decimal(order.tax)
        if tax > 0:
            line_items.append(self._flat_item("Tax", tax))

        return line_items

    def _product_item(self, item) -> dict:
        product = item.product
        product_data = {"name": product.name}
        if product.description:
            product_data["description"] = product.description
        image = self._first_image(product.images)
        if image:
            product_data["images"] = [image]

        return {
            "price_data": {
                "currency": self.currency,
                "product_data": product_data,
                "unit_amount": to_cents(item.price),
            },
            "quantity": item.quantity,
        }

    def _flat_item(self, name: str, amount) -> dict:
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": {"name": name},
                "unit_amount": to_cents(amount),
            },
            "quantity": 1,
        }

    @staticmethod
    def _first_image(images) -> str | None:
        if not images:
            return None
        first = images[0]
        if isinstance(first, dict):
            return first.get("url")
        return first
