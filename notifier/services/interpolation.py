"""
Template variable interpolation

Each notification family has its own payload dataclass; render() accepts any
of them (or a plain mapping) and substitutes {{key}} placeholders. A key
with no value renders as the empty string, never as the literal placeholder.
"""
import re
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


@dataclass
class LineItem:
    name: str
    quantity: int = 1
    price: str = ""


@dataclass
class NotificationPayload:
    """Base payload: named fields plus free-form extras for template-specific keys"""
    customer_name: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # Shown in place of an unknown customer_name; never stored on the customer
    greeting: ClassVar[Optional[str]] = None

    def variables(self) -> Dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != 'extra'}
        if not values.get('customer_name'):
            values['customer_name'] = self.greeting
        values.update(self.extra)
        return values


@dataclass
class OrderPayload(NotificationPayload):
    greeting: ClassVar[Optional[str]] = 'Customer'

    order_number: Optional[str] = None
    currency: Optional[str] = None
    total_price: Optional[str] = None
    items: List[LineItem] = field(default_factory=list)
    shipping_address: Optional[Dict[str, Any]] = None
    delivery_estimate: Optional[str] = None
    order_status_url: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    delivery_date: Optional[str] = None
    refund_amount: Optional[str] = None
    review_url: Optional[str] = None
    support_phone: Optional[str] = None


@dataclass
class CartPayload(NotificationPayload):
    greeting: ClassVar[Optional[str]] = 'there'

    currency: Optional[str] = None
    total_price: Optional[str] = None
    items: List[LineItem] = field(default_factory=list)
    checkout_url: Optional[str] = None
    shop_name: Optional[str] = None


@dataclass
class CustomerPayload(NotificationPayload):
    greeting: ClassVar[Optional[str]] = 'there'

    shop_name: Optional[str] = None
    shop_url: Optional[str] = None
    free_shipping_threshold: Optional[str] = None


@dataclass
class ReviewPayload(NotificationPayload):
    greeting: ClassVar[Optional[str]] = 'there'

    product_name: Optional[str] = None
    order_number: Optional[str] = None
    review_url: Optional[str] = None


@dataclass
class PromotionPayload(NotificationPayload):
    """Marketing sends: flash sales, exclusive offers, price drops, restocks"""
    shop_url: Optional[str] = None
    promo_code: Optional[str] = None
    discount: Optional[str] = None
    hours: Optional[str] = None
    end_time: Optional[str] = None
    offer_details: Optional[str] = None
    expiry_date: Optional[str] = None
    product_name: Optional[str] = None
    product_description: Optional[str] = None
    product_url: Optional[str] = None
    currency: Optional[str] = None
    price: Optional[str] = None
    original_price: Optional[str] = None
    sale_price: Optional[str] = None
    savings: Optional[str] = None


TemplateData = Union[NotificationPayload, Mapping[str, Any], None]


def template_variables(data: TemplateData) -> Dict[str, Any]:
    """Flatten a payload or mapping into a fresh dict (the input is never mutated)"""
    if data is None:
        return {}
    if isinstance(data, NotificationPayload):
        return data.variables()
    if isinstance(data, Mapping):
        return dict(data)
    raise TypeError(f"Unsupported template data: {type(data).__name__}")


def known_customer_name(data: TemplateData) -> Optional[str]:
    """The customer's real name as supplied, without any greeting fallback"""
    if isinstance(data, NotificationPayload):
        return data.extra.get('customer_name') or data.customer_name or None
    if isinstance(data, Mapping):
        return data.get('customer_name') or None
    return None


def _field(obj: Any, name: str, default: Any = "") -> Any:
    if isinstance(obj, Mapping):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def format_items(items: List[Any], currency: Optional[str]) -> str:
    """One bullet line per item: • {name} ({quantity}x) - {currency} {price}"""
    currency = currency or ""
    return "\n".join(
        f"• {_field(item, 'name')} ({_field(item, 'quantity')}x) - {currency} {_field(item, 'price')}"
        for item in items
    )


def format_address(address: Mapping[str, Any]) -> str:
    return (
        f"{_field(address, 'name')}\n"
        f"{_field(address, 'address1')}\n"
        f"{_field(address, 'city')}, {_field(address, 'country')}"
    )


def prepare_variables(data: TemplateData) -> Dict[str, Any]:
    """Resolve variables, pre-formatting the structured items / shipping_address fields"""
    values = template_variables(data)

    items = values.get('items')
    if isinstance(items, (list, tuple)):
        values['items'] = format_items(list(items), values.get('currency'))

    address = values.get('shipping_address')
    if isinstance(address, Mapping):
        values['shipping_address'] = format_address(address)

    return values


def render(template: str, data: TemplateData = None) -> str:
    """Substitute every {{key}} in template; absent keys become ''"""
    values = prepare_variables(data)

    def _substitute(match: "re.Match[str]") -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)
