"""
Template store and {{placeholder}} interpolation.

Guards against:
1. Literal {{...}} tokens leaking into customer messages
2. Item / address formatting drift
3. Missing English defaults for types the flow table knows about
"""
import pytest

from notifier.services.flow_resolver import NOTIFICATION_FLOW_TYPES
from notifier.services.interpolation import (
    CartPayload,
    LineItem,
    OrderPayload,
    ReviewPayload,
    known_customer_name,
    render,
    template_variables,
)
from notifier.services.templates import (
    KNOWN_NOTIFICATION_TYPES,
    get_template,
    is_known_notification_type,
    supported_languages,
)


# ---------------------------------------------------------------------------
# Template store
# ---------------------------------------------------------------------------

def test_english_template_exists_for_every_flow_mapped_type():
    for notification_type in NOTIFICATION_FLOW_TYPES:
        assert get_template("en", notification_type), notification_type


def test_partial_language_returns_none_for_missing_pair():
    assert get_template("es", "order_placed") is not None
    assert get_template("es", "abandoned_cart_24h") is None


def test_unknown_language_and_type_return_none():
    assert get_template("xx", "order_placed") is None
    assert get_template("en", "no_such_type") is None


def test_known_types_and_languages():
    assert is_known_notification_type("review_request")
    assert not is_known_notification_type("no_such_type")
    assert "en" in supported_languages()
    assert "support_ticket_resolved" in KNOWN_NOTIFICATION_TYPES


# ---------------------------------------------------------------------------
# Interpolation
# ---------------------------------------------------------------------------

def test_missing_key_renders_empty_string():
    assert render("Hi {{customer_name}}!", {}) == "Hi !"


def test_none_value_renders_empty_string():
    assert render("Hi {{customer_name}}!", {"customer_name": None}) == "Hi !"


def test_no_data_renders_empty_string():
    assert render("Order {{order_number}} ready", None) == "Order  ready"


def test_placeholder_whitespace_is_tolerated():
    assert render("Hi {{ customer_name }}", {"customer_name": "Ana"}) == "Hi Ana"


def test_items_rendered_as_bullets():
    text = render(
        "{{items}}",
        {"items": [{"name": "Shirt", "quantity": 2, "price": "19.99"}], "currency": "USD"},
    )
    assert text == "• Shirt (2x) - USD 19.99"


def test_multiple_items_one_line_each():
    payload = CartPayload(
        currency="EUR",
        items=[LineItem("Mug", 1, "8.00"), LineItem("Tea", 3, "4.50")],
    )
    assert render("{{items}}", payload) == "• Mug (1x) - EUR 8.00\n• Tea (3x) - EUR 4.50"


def test_shipping_address_rendered_as_block():
    payload = OrderPayload(
        shipping_address={"name": "Ana Silva", "address1": "1 Main St", "city": "Lisbon", "country": "Portugal"}
    )
    assert render("{{shipping_address}}", payload) == "Ana Silva\n1 Main St\nLisbon, Portugal"


def test_rendering_does_not_mutate_input():
    data = {"items": [{"name": "Shirt", "quantity": 1, "price": "10"}], "currency": "USD"}
    render("{{items}}", data)
    assert data["items"] == [{"name": "Shirt", "quantity": 1, "price": "10"}]


def test_payload_extra_keys_are_available():
    payload = ReviewPayload(customer_name="Ana", extra={"ticket_number": "42"})
    assert render("{{customer_name}} #{{ticket_number}}", payload) == "Ana #42"


def test_unknown_name_falls_back_to_greeting_only_when_rendering():
    assert render("Hi {{customer_name}}!", CartPayload()) == "Hi there!"
    assert render("Thanks {{customer_name}}", OrderPayload()) == "Thanks Customer"
    assert known_customer_name(CartPayload()) is None
    assert known_customer_name(OrderPayload(customer_name="Ana")) == "Ana"
    assert known_customer_name({"customer_name": "Bo"}) == "Bo"


def test_full_default_template_leaves_no_placeholders():
    payload = OrderPayload(customer_name="Ana", order_number="#1001")
    text = render(get_template("en", "order_placed"), payload)
    assert "{{" not in text
    assert "#1001" in text


def test_template_variables_rejects_other_types():
    with pytest.raises(TypeError):
        template_variables(["not", "a", "mapping"])
