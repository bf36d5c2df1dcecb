"""
Merchant flow lookup: requested language -> English -> any language -> none.
"""
from notifier.models.flow import WhatsAppFlow
from notifier.services.flow_resolver import flow_category, resolve_override

from conftest import SHOP


def _flow(db, flow_type, language, content="Hi {{first_name}}", active=True, shop_domain=SHOP):
    flow = WhatsAppFlow(
        shop_domain=shop_domain,
        flow_name=f"{flow_type} {language}",
        flow_type=flow_type,
        language=language,
        message_content=content,
        is_active=active,
    )
    db.add(flow)
    db.commit()
    return flow


def test_fine_grained_types_share_a_category():
    assert flow_category("order_placed") == "order_confirmation"
    assert flow_category("order_paid") == "order_confirmation"
    assert flow_category("abandoned_cart_final") == "abandoned_cart"
    assert flow_category("custom") is None


def test_exact_language_wins(db):
    _flow(db, "welcome", "en")
    spanish = _flow(db, "welcome", "es")
    assert resolve_override(db, SHOP, "welcome_customer", "es").id == spanish.id


def test_falls_back_to_english(db):
    english = _flow(db, "welcome", "en")
    _flow(db, "welcome", "ar")
    assert resolve_override(db, SHOP, "welcome_customer", "fr").id == english.id


def test_single_language_flow_is_used_for_any_request(db):
    spanish = _flow(db, "welcome", "es")
    assert resolve_override(db, SHOP, "welcome_customer", "en").id == spanish.id


def test_inactive_and_other_shop_flows_are_ignored(db):
    _flow(db, "welcome", "en", active=False)
    _flow(db, "welcome", "en", shop_domain="other-store.myshopify.com")
    assert resolve_override(db, SHOP, "welcome_customer", "en") is None


def test_unmapped_type_has_no_override(db):
    _flow(db, "welcome", "en")
    assert resolve_override(db, SHOP, "support_ticket_resolved", "en") is None
