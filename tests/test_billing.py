from datetime import datetime

import pytest

import billing
from schemas import ShopConfig


@pytest.fixture
def shop():
    return ShopConfig(name="Spice Box", address="5 Park Street", phone="020-5555").model_dump()


@pytest.fixture
def order():
    return {
        "id": "665f1c2e8a1b2c3d4e5f6a7b",
        "orderRef": "ORD-1001",
        "status": "pending",
        "createdAt": datetime(2026, 10, 19, 9, 0),
        "customer": {
            "name": "Priya Sharma",
            "phone": "+91 98765-43210",
            "type": "Delivery",
            "address": "12 MG Road, Pune",
            "preferredTime": None,
            "payment": "Cash",
            "notes": None,
        },
        "items": [
            {"name": "Cake", "unit": "", "qty": 2, "price": 500.0, "lineTotal": 1000.0},
            {"name": "Samosa", "unit": "6 pcs", "qty": 1, "price": 120.5, "lineTotal": 120.5},
        ],
        "subtotal": 1120.5,
    }


def test_render_is_deterministic(order, shop):
    first = billing.render(order, shop)
    second = billing.render(order, shop)
    assert first == second
    assert first.document_html == second.document_html
    assert first.whatsapp_message == second.whatsapp_message


def test_bill_lines_and_subtotal(order, shop):
    doc = billing.render_bill_html(order, shop)
    assert "1. Cake</strong>" in doc
    assert "2 × ₹500 = ₹1000" in doc
    assert "2. Samosa (6 pcs)" in doc
    assert "1 × ₹120.5 = ₹120.5" in doc
    assert "SUBTOTAL: ₹1120.5" in doc
    assert "PENDING" in doc


def test_bill_sections_appear_in_order(order, shop):
    doc = billing.render_bill_html({**order, "customer": {**order["customer"], "notes": "Less sugar"}}, shop)
    positions = [doc.index(marker) for marker in (
        "<h1>Spice Box</h1>",
        "Order Ref:",
        "CUSTOMER DETAILS",
        "ITEMS",
        "SUBTOTAL:",
        "NOTES",
        "Thank you for your order!",
    )]
    assert positions == sorted(positions)
    assert "5 Park Street" in doc
    assert "Phone: 020-5555" in doc


def test_optional_customer_fields_are_left_out(order, shop):
    doc = billing.render_bill_html(order, shop)
    assert "Address:" in doc
    assert "Preferred Time:" not in doc
    assert "NOTES" not in doc
    message = billing.render_whatsapp_message(order, shop)
    assert "Preferred Time:" not in message
    assert "Notes:" not in message


def test_user_text_is_escaped_in_bill(order, shop):
    hostile = {**order, "customer": {**order["customer"], "name": "<script>x</script>"}}
    doc = billing.render_bill_html(hostile, shop)
    assert "<script>" not in doc
    assert "&lt;script&gt;x&lt;/script&gt;" in doc


def test_date_in_shop_timezone(order, shop):
    # 09:00 UTC is 14:30 in Asia/Kolkata
    message = billing.render_whatsapp_message(order, shop)
    assert "Date: 19 October 2026, 02:30 PM" in message


def test_date_format_is_configurable(order, shop):
    config = {**shop, "timezone": "UTC", "dateFormat": "%Y-%m-%d %H:%M"}
    assert "Date: 2026-10-19 09:00" in billing.render_whatsapp_message(order, config)


def test_unknown_timezone_falls_back_to_utc(order, shop):
    config = {**shop, "timezone": "Mars/Olympus", "dateFormat": "%H:%M"}
    assert "Date: 09:00" in billing.render_whatsapp_message(order, config)


def test_whatsapp_message_layout(order, shop):
    message = billing.render_whatsapp_message(order, shop)
    assert message.startswith("*Spice Box - Order Bill*\n\nOrder Ref: ORD-1001\n")
    assert "*Customer Details:*\nName: Priya Sharma\n" in message
    assert "1. Cake\n   2 × ₹500 = ₹1000\n" in message
    assert "*Subtotal: ₹1120.5*" in message
    assert message.endswith("Thank you for your order!")


def test_phone_normalization_and_link(order, shop):
    rendered = billing.render(order, shop)
    assert rendered.normalized_phone == "919876543210"
    assert rendered.whatsapp_link.startswith("https://wa.me/919876543210?text=")
    encoded = rendered.whatsapp_link.split("?text=", 1)[1]
    assert "*Spice%20Box%20-%20Order%20Bill*%0A%0A" in encoded
    assert "%C3%97" in encoded  # the × sign
    assert " " not in encoded


def test_phone_keeps_ascii_digits_only(order, shop):
    assert billing.normalize_phone("+११ 98765-43210") == "9876543210"
    customer = {**order["customer"], "phone": "+९१ 98765-43210"}
    rendered = billing.render({**order, "customer": customer}, shop)
    assert rendered.normalized_phone == "9876543210"
    assert rendered.whatsapp_link.startswith("https://wa.me/9876543210?text=")
    assert rendered.whatsapp_link.isascii()


def test_currency_symbol_follows_config(order, shop):
    message = billing.render_whatsapp_message(order, {**shop, "currency": "USD"})
    assert "2 × $500 = $1000" in message
    assert billing.currency_symbol("AED") == "AED "


@pytest.mark.parametrize("value, expected", [
    (500.0, "500"),
    (12.5, "12.5"),
    (0.1 + 0.2, "0.3"),
    (1000, "1000"),
    (33.333, "33.333"),
    (2.005, "2.005"),
    (None, "0"),
])
def test_format_amount(value, expected):
    assert billing.format_amount(value) == expected


def test_empty_shop_name_uses_default(order):
    message = billing.render_whatsapp_message(order, {"name": ""})
    assert message.startswith(f"*{ShopConfig().name} - Order Bill*")
