"""
Printable bill and WhatsApp message for an order

Both are pure functions of the stored order and the shop config: the
same inputs always give byte-identical output, so a reprinted bill
matches the original.
"""
import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from schemas import ShopConfig

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}
WHATSAPP_BASE_URL = "https://wa.me/"
# characters encodeURIComponent leaves alone
URI_COMPONENT_SAFE = "-_.!~*'()"

BILL_STYLE = """    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: 'Courier New', monospace; padding: 20px; max-width: 600px; margin: 0 auto; }
    .header { text-align: center; border-bottom: 2px solid #000; padding-bottom: 15px; margin-bottom: 15px; }
    .header h1 { font-size: 24px; font-weight: bold; margin-bottom: 5px; }
    .header p { font-size: 12px; margin: 2px 0; }
    .section { margin: 15px 0; }
    .section-title { font-weight: bold; border-bottom: 1px solid #000; padding-bottom: 5px; margin-bottom: 10px; }
    .row { display: flex; justify-content: space-between; margin: 5px 0; }
    .item { display: flex; justify-content: space-between; margin: 5px 0; padding: 5px 0; border-bottom: 1px dotted #ccc; }
    .total { font-weight: bold; font-size: 18px; text-align: right; margin-top: 15px; padding-top: 10px; border-top: 2px solid #000; }
    .footer { text-align: center; margin-top: 20px; padding-top: 15px; border-top: 1px solid #000; font-size: 12px; }
    @media print { body { padding: 10px; } }"""


@dataclass(frozen=True)
class RenderedBill:
    document_html: str
    whatsapp_message: str
    whatsapp_link: str
    normalized_phone: str


def currency_symbol(code: Optional[str]) -> str:
    code = (code or "").upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} " if code else "")


def format_amount(value: Any) -> str:
    """500.0 -> '500', 33.333 -> '33.333'

    The stored number is printed as is; rounding at 10 places only drops
    float noise such as 0.30000000000000004.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0"
    text = repr(round(number, 10))
    return text[:-2] if text.endswith(".0") else text


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"[^0-9]", "", phone or "")


def format_order_date(created_at: Any, tz_name: str, date_format: str) -> str:
    if isinstance(created_at, str):
        try:
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        except ValueError:
            return "N/A"
    if not isinstance(created_at, datetime):
        return "N/A"
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, formatting bill date in UTC", tz_name)
        tz = timezone.utc
    return created_at.astimezone(tz).strftime(date_format)


class _Context:
    """Values shared by both renderings, computed once."""

    def __init__(self, order: Mapping[str, Any], config: Mapping[str, Any]):
        defaults = ShopConfig()
        self.shop_name = config.get("name") or defaults.name
        self.shop_address = config.get("address") or ""
        self.shop_phone = config.get("phone") or ""
        self.symbol = currency_symbol(config.get("currency") or defaults.currency)
        self.date = format_order_date(
            order.get("createdAt"),
            config.get("timezone") or defaults.timezone,
            config.get("dateFormat") or defaults.dateFormat,
        )
        self.ref = str(order.get("orderRef", ""))
        self.status = str(order.get("status") or "pending").upper()
        self.customer: Dict[str, Any] = dict(order.get("customer") or {})
        self.items: List[Mapping[str, Any]] = list(order.get("items") or [])
        self.subtotal = format_amount(order.get("subtotal"))

    def customer_field(self, key: str) -> str:
        return str(self.customer.get(key) or "N/A")

    def optional_field(self, key: str) -> Optional[str]:
        value = self.customer.get(key)
        return str(value) if value else None

    def item_title(self, index: int, item: Mapping[str, Any]) -> str:
        unit = item.get("unit")
        return f"{index}. {item.get('name', '')}" + (f" ({unit})" if unit else "")

    def item_line(self, item: Mapping[str, Any]) -> str:
        return (
            f"{item.get('qty', 0)} × {self.symbol}{format_amount(item.get('price'))}"
            f" = {self.symbol}{format_amount(item.get('lineTotal'))}"
        )


def render_bill_html(order: Mapping[str, Any], config: Mapping[str, Any]) -> str:
    ctx = _Context(order, config)
    e = html.escape

    def row(label: str, value: str, strong: bool = False) -> str:
        label_html = f"<strong>{label}:</strong>" if strong else f"<span>{label}:</span>"
        return f'    <div class="row">{label_html} <span>{e(value)}</span></div>'

    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '  <meta charset="UTF-8">',
        f"  <title>Bill - {e(ctx.ref)}</title>",
        "  <style>",
        BILL_STYLE,
        "  </style>",
        "</head>",
        "<body>",
        '  <div class="header">',
        f"    <h1>{e(ctx.shop_name)}</h1>",
    ]
    if ctx.shop_address:
        lines.append(f"    <p>{e(ctx.shop_address)}</p>")
    if ctx.shop_phone:
        lines.append(f"    <p>Phone: {e(ctx.shop_phone)}</p>")
    lines += [
        "  </div>",
        '  <div class="section">',
        row("Order Ref", ctx.ref, strong=True),
        row("Date", ctx.date, strong=True),
        row("Status", ctx.status, strong=True),
        "  </div>",
        '  <div class="section">',
        '    <div class="section-title">CUSTOMER DETAILS</div>',
        row("Name", ctx.customer_field("name")),
        row("Phone", ctx.customer_field("phone")),
        row("Type", ctx.customer_field("type")),
    ]
    address = ctx.optional_field("address")
    if address:
        lines.append(row("Address", address))
    preferred = ctx.optional_field("preferredTime")
    if preferred:
        lines.append(row("Preferred Time", preferred))
    lines += [
        row("Payment", ctx.customer_field("payment")),
        "  </div>",
        '  <div class="section">',
        '    <div class="section-title">ITEMS</div>',
    ]
    for index, item in enumerate(ctx.items, start=1):
        lines += [
            '    <div class="item">',
            f"      <div><strong>{e(ctx.item_title(index, item))}</strong></div>",
            f"      <div>{e(ctx.item_line(item))}</div>",
            "    </div>",
        ]
    lines += [
        "  </div>",
        f'  <div class="total">SUBTOTAL: {e(ctx.symbol)}{ctx.subtotal}</div>',
    ]
    notes = ctx.optional_field("notes")
    if notes:
        lines += [
            '  <div class="section">',
            '    <div class="section-title">NOTES</div>',
            f"    <p>{e(notes)}</p>",
            "  </div>",
        ]
    lines += [
        '  <div class="footer">',
        "    <p>Thank you for your order!</p>",
        f"    <p>{e(ctx.shop_name)}</p>",
        "  </div>",
        "</body>",
        "</html>",
    ]
    return "\n".join(lines) + "\n"


def render_whatsapp_message(order: Mapping[str, Any], config: Mapping[str, Any]) -> str:
    ctx = _Context(order, config)
    lines = [
        f"*{ctx.shop_name} - Order Bill*",
        "",
        f"Order Ref: {ctx.ref}",
        f"Date: {ctx.date}",
        f"Status: {ctx.status}",
        "",
        "*Customer Details:*",
        f"Name: {ctx.customer_field('name')}",
        f"Phone: {ctx.customer_field('phone')}",
        f"Type: {ctx.customer_field('type')}",
    ]
    address = ctx.optional_field("address")
    if address:
        lines.append(f"Address: {address}")
    preferred = ctx.optional_field("preferredTime")
    if preferred:
        lines.append(f"Preferred Time: {preferred}")
    lines += [f"Payment: {ctx.customer_field('payment')}", "", "*Items:*"]
    for index, item in enumerate(ctx.items, start=1):
        lines.append(ctx.item_title(index, item))
        lines.append(f"   {ctx.item_line(item)}")
    lines += ["", f"*Subtotal: {ctx.symbol}{ctx.subtotal}*", ""]
    notes = ctx.optional_field("notes")
    if notes:
        lines += [f"Notes: {notes}", ""]
    lines.append("Thank you for your order!")
    return "\n".join(lines)


def whatsapp_link(phone: str, message: str) -> str:
    return f"{WHATSAPP_BASE_URL}{phone}?text={quote(message, safe=URI_COMPONENT_SAFE)}"


def render(order: Mapping[str, Any], config: Mapping[str, Any]) -> RenderedBill:
    message = render_whatsapp_message(order, config)
    phone = normalize_phone((order.get("customer") or {}).get("phone"))
    return RenderedBill(
        document_html=render_bill_html(order, config),
        whatsapp_message=message,
        whatsapp_link=whatsapp_link(phone, message),
        normalized_phone=phone,
    )
