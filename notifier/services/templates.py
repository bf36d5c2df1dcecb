"""
Default WhatsApp message templates

English is authoritative and covers every known notification type; other
languages are partial. A missing (language, type) pair is normal and callers
must fall back.
"""
from typing import Dict, List, Optional


DEFAULT_TEMPLATES: Dict[str, Dict[str, str]] = {
    'en': {
        # ── Orders ───────────────────────────────────────────
        'order_placed': (
            "🎉 Order Confirmed!\n\n"
            "Thank you {{customer_name}}!\n\n"
            "Order #{{order_number}}\n"
            "Total: {{currency}} {{total_price}}\n\n"
            "📦 Items:\n{{items}}\n\n"
            "📍 Delivery to:\n{{shipping_address}}\n\n"
            "Estimated delivery: {{delivery_estimate}}\n\n"
            "Track your order: {{order_status_url}}\n\n"
            "Questions? Reply to this message!"
        ),
        'order_paid': (
            "💳 Payment Confirmed!\n\n"
            "Hi {{customer_name}}, we've received your payment for Order #{{order_number}}.\n\n"
            "Amount: {{currency}} {{total_price}}\n\n"
            "Your order is now being prepared for shipping! 📦"
        ),
        'order_processing': (
            "⚙️ Order Update\n\n"
            "Hi {{customer_name}}! Your order #{{order_number}} is being processed.\n\n"
            "We're preparing your items for shipping. You'll receive tracking info soon!"
        ),
        'order_fulfilled': (
            "📦 Shipped!\n\n"
            "Great news {{customer_name}}! Your order #{{order_number}} has been shipped!\n\n"
            "🚚 Carrier: {{carrier}}\n"
            "📍 Tracking: {{tracking_number}}\n"
            "🔗 Track here: {{tracking_url}}\n\n"
            "Estimated delivery: {{delivery_date}}"
        ),
        'order_out_for_delivery': (
            "🚚 Out for Delivery!\n\n"
            "{{customer_name}}, your order #{{order_number}} is out for delivery today!\n\n"
            "Please ensure someone is available to receive the package.\n\n"
            "Tracking: {{tracking_url}}"
        ),
        'order_delivered': (
            "✅ Delivered!\n\n"
            "Hi {{customer_name}}, your order #{{order_number}} has been delivered!\n\n"
            "We hope you love your purchase! 💙\n\n"
            "Rate your experience: {{review_url}}\n\n"
            "Have issues? Reply to this message."
        ),
        'order_cancelled': (
            "❌ Order Cancelled\n\n"
            "{{customer_name}}, your order #{{order_number}} has been cancelled.\n\n"
            "Refund amount: {{currency}} {{refund_amount}}\n"
            "Refund will be processed in 3-5 business days.\n\n"
            "Questions? Reply here or call {{support_phone}}"
        ),
        'order_refunded': (
            "💰 Refund Processed\n\n"
            "Hi {{customer_name}}, your refund has been processed.\n\n"
            "Order: #{{order_number}}\n"
            "Amount: {{currency}} {{refund_amount}}\n\n"
            "Please allow 3-5 business days for the refund to appear in your account."
        ),

        # ── Checkout / abandoned cart ────────────────────────
        'checkout_started': (
            "🛒 Complete Your Purchase!\n\n"
            "Hi {{customer_name}}! You started a checkout but didn't complete it.\n\n"
            "📦 Your items:\n{{items}}\n\n"
            "Total: {{currency}} {{total_price}}\n\n"
            "🎁 Complete now and get FREE shipping!\n{{checkout_url}}\n\n"
            "Need help? Reply to this message!"
        ),
        'abandoned_cart_1h': (
            "🛒 You left something behind!\n\n"
            "Hi {{customer_name}}, you have items in your cart:\n\n"
            "{{items}}\n\n"
            "Total: {{currency}} {{total_price}}\n\n"
            "Complete your purchase: {{checkout_url}}\n\n"
            "Your cart will be saved for 24 hours."
        ),
        'abandoned_cart_24h': (
            "⏰ Last Chance!\n\n"
            "{{customer_name}}, your cart is about to expire!\n\n"
            "{{items}}\n\n"
            "💰 Get 10% OFF with code: SAVE10\n\n"
            "Complete purchase: {{checkout_url}}\n\n"
            "This offer expires in 2 hours!"
        ),
        'abandoned_cart_final': (
            "😢 We're holding your items!\n\n"
            "{{customer_name}}, don't miss out!\n\n"
            "{{items}}\n\n"
            "🎁 Special offer: 15% OFF with code: COMEBACK15\n\n"
            "{{checkout_url}}\n\n"
            "This is our final reminder."
        ),

        # ── Customer account ─────────────────────────────────
        'welcome_customer': (
            "🎉 Welcome to {{shop_name}}!\n\n"
            "Hi {{customer_name}}, thanks for joining our family!\n\n"
            "🎁 Here's your welcome gift:\n"
            "• 15% off your first order with code: WELCOME15\n"
            "• Free shipping on orders over {{free_shipping_threshold}}\n"
            "• Early access to sales\n\n"
            "📱 Save this number for:\n"
            "• Order updates\n"
            "• Exclusive deals\n"
            "• Quick support\n\n"
            "Shop now: {{shop_url}}\n\n"
            "Reply STOP to unsubscribe."
        ),
        'customer_birthday': (
            "🎂 Happy Birthday {{customer_name}}!\n\n"
            "{{shop_name}} wishes you a wonderful day!\n\n"
            "🎁 Here's your birthday gift:\n"
            "30% OFF everything with code: BDAY30\n\n"
            "Valid for 7 days. Treat yourself!\n\n"
            "{{shop_url}}"
        ),
        'vip_status_achieved': (
            "⭐ VIP Status Unlocked!\n\n"
            "Congratulations {{customer_name}}!\n\n"
            "You're now a VIP member! Enjoy:\n"
            "• 20% off all orders\n"
            "• Free shipping always\n"
            "• Early access to new products\n"
            "• Priority support\n\n"
            "Thank you for being amazing! 💙"
        ),

        # ── Shipping ─────────────────────────────────────────
        'shipping_label_created': (
            "📋 Shipping Label Created\n\n"
            "{{customer_name}}, we're preparing your order #{{order_number}} for shipment!\n\n"
            "You'll receive tracking info once the carrier picks it up."
        ),
        'shipping_delayed': (
            "⚠️ Shipping Delay\n\n"
            "Hi {{customer_name}}, your order #{{order_number}} is delayed.\n\n"
            "New estimated delivery: {{new_delivery_date}}\n\n"
            "We apologize for the inconvenience. Track updates: {{tracking_url}}"
        ),
        'shipping_exception': (
            "⚠️ Delivery Issue\n\n"
            "{{customer_name}}, there's an issue delivering your order #{{order_number}}.\n\n"
            "Issue: {{exception_reason}}\n\n"
            "Please contact us to resolve: {{support_phone}}"
        ),

        # ── Products ─────────────────────────────────────────
        'back_in_stock': (
            "🎉 Back in Stock!\n\n"
            "Hi {{customer_name}}, great news!\n\n"
            "\"{{product_name}}\" is back in stock!\n\n"
            "{{product_description}}\n"
            "Price: {{currency}} {{price}}\n\n"
            "🛒 Buy now: {{product_url}}\n\n"
            "Limited quantity available!"
        ),
        'price_drop': (
            "💰 Price Drop Alert!\n\n"
            "{{customer_name}}, an item you viewed is now on sale!\n\n"
            "\"{{product_name}}\"\n"
            "Was: {{currency}} {{original_price}}\n"
            "Now: {{currency}} {{sale_price}}\n"
            "You save: {{savings}}%\n\n"
            "🛒 Get it now: {{product_url}}"
        ),

        # ── Reviews ──────────────────────────────────────────
        'review_request': (
            "⭐ How was your purchase?\n\n"
            "Hi {{customer_name}}, how do you like your {{product_name}}?\n\n"
            "Share your experience and get 10% off your next order!\n\n"
            "✍️ Leave a review: {{review_url}}\n\n"
            "Your feedback helps us improve!"
        ),
        'review_reminder': (
            "🌟 We'd love your feedback!\n\n"
            "{{customer_name}}, don't forget to review your recent purchase!\n\n"
            "Leave a review and get 15% OFF your next order.\n\n"
            "{{review_url}}"
        ),

        # ── Promotional ──────────────────────────────────────
        'flash_sale': (
            "⚡ FLASH SALE - {{hours}} Hours Only!\n\n"
            "Hi {{customer_name}}, exclusive offer for you!\n\n"
            "{{discount}}% OFF everything!\n"
            "Code: {{promo_code}}\n\n"
            "Shop now: {{shop_url}}\n\n"
            "Ends at {{end_time}}!"
        ),
        'exclusive_offer': (
            "🎁 Exclusive Offer for You!\n\n"
            "{{customer_name}}, as a valued customer, enjoy:\n\n"
            "{{offer_details}}\n\n"
            "Use code: {{promo_code}}\n"
            "Valid until: {{expiry_date}}\n\n"
            "{{shop_url}}"
        ),

        # ── Support ──────────────────────────────────────────
        'support_ticket_created': (
            "🎫 Support Ticket #{{ticket_number}}\n\n"
            "Hi {{customer_name}}, we've received your inquiry.\n\n"
            "Subject: {{subject}}\n\n"
            "Our team will respond within {{response_time}}.\n\n"
            "Need urgent help? Call {{support_phone}}"
        ),
        'support_ticket_resolved': (
            "✅ Ticket Resolved\n\n"
            "{{customer_name}}, your support ticket #{{ticket_number}} has been resolved.\n\n"
            "If you need further assistance, just reply to this message.\n\n"
            "Rate our support: {{feedback_url}}"
        ),
    },

    # Arabic (partial)
    'ar': {
        'order_placed': (
            "🎉 تم تأكيد الطلب!\n\n"
            "شكراً لك {{customer_name}}!\n\n"
            "رقم الطلب #{{order_number}}\n"
            "الإجمالي: {{currency}} {{total_price}}\n\n"
            "التوصيل إلى:\n{{shipping_address}}\n\n"
            "تتبع طلبك: {{order_status_url}}"
        ),
    },

    # Spanish (partial)
    'es': {
        'order_placed': (
            "🎉 ¡Pedido Confirmado!\n\n"
            "¡Gracias {{customer_name}}!\n\n"
            "Pedido #{{order_number}}\n"
            "Total: {{currency}} {{total_price}}\n\n"
            "Entrega a:\n{{shipping_address}}\n\n"
            "Rastrear pedido: {{order_status_url}}"
        ),
    },
}

KNOWN_NOTIFICATION_TYPES = frozenset(DEFAULT_TEMPLATES['en'])


def get_template(language: str, notification_type: str) -> Optional[str]:
    """Template for (language, type), or None when that pair is not authored"""
    return DEFAULT_TEMPLATES.get(language, {}).get(notification_type)


def supported_languages() -> List[str]:
    return sorted(DEFAULT_TEMPLATES)


def is_known_notification_type(notification_type: str) -> bool:
    return notification_type in KNOWN_NOTIFICATION_TYPES
