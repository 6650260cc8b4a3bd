"""
Order Translator: storefront order payload -> POS transaction document.

The document has three sections of plain dicts the POS import function
understands:
    hdr  - transaction header
    dat  - line items (order lines, then one handling-charge line per shipping line)
    pay  - payments (always one entry)

The only lookup is a read of the catalog mirror to resolve POS item codes.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from dateutil import parser as date_parser
from dateutil import tz

from app.utils.config import settings
from app.utils.parsing import parse_float, parse_int, truncate
import logging

logger = logging.getLogger(__name__)

POS_DATE_FORMAT = "%Y-%m-%d  %H:%M:%S"

# Payment processor name -> POS payment code
PAYMENT_CODES = {
    "Visa": "VI",
    "Mastercard": "MC",
    "paypal": "PL",
    "shopify_payments": "SP",
}
OTHER_PAYMENT_CODE = "OT"

ANONYMOUS_CUSTOMER = "Anonymous"


def create_trx_no(order_number: Any, on: Optional[datetime] = None) -> str:
    """
    Deterministic POS transaction number:
    prefix + YY + MM + order number zero-padded to six digits.
    """
    if isinstance(order_number, float):
        order_string = f"{order_number:.0f}"
    else:
        order_string = str(order_number).strip()
    when = on or datetime.now()
    return f"{settings.POS_ORDER_PREFIX}{when:%y}{when:%m}{order_string.zfill(6)[-6:]}"


def order_date(order: Dict[str, Any]) -> Optional[datetime]:
    raw = order.get("created_at")
    if not raw:
        return None
    try:
        return date_parser.isoparse(str(raw))
    except (ValueError, OverflowError):
        logger.warning(f"Unparseable order timestamp: {raw!r}")
        return None


def trx_no_for_order(order: Dict[str, Any]) -> str:
    """Transaction number keyed on the order's own creation month, so retries never drift."""
    created = order_date(order)
    if created is not None:
        created = created.astimezone(tz.gettz(settings.POS_TIMEZONE))
    return create_trx_no(order.get("order_number"), on=created)


def format_pos_date(order: Dict[str, Any]) -> str:
    created = order_date(order) or datetime.now(tz.tzlocal())
    if created.tzinfo is None:
        created = created.replace(tzinfo=tz.tzlocal())
    return created.astimezone(tz.gettz(settings.POS_TIMEZONE)).strftime(POS_DATE_FORMAT)


def resolve_customer(order: Dict[str, Any]) -> str:
    """Customer identifier: phone, email, full name, storefront user ID, else 'Anonymous'."""
    customer = order.get("customer")
    if not customer:
        return ANONYMOUS_CUSTOMER

    full_name = " ".join(
        part.strip() for part in (customer.get("first_name"), customer.get("last_name")) if part and part.strip()
    )
    for candidate in (customer.get("phone"), customer.get("email"), full_name, customer.get("id")):
        if candidate not in (None, ""):
            return truncate(candidate, 15)
    return ANONYMOUS_CUSTOMER


def payment_code(order: Dict[str, Any]) -> str:
    details = order.get("payment_details")
    if details:
        processor = details.get("credit_card_company")
    else:
        processor = order.get("gateway")
        if not processor and order.get("payment_gateway_names"):
            processor = order["payment_gateway_names"][0]
    return PAYMENT_CODES.get(processor, OTHER_PAYMENT_CODE)


def line_discount(item: Dict[str, Any]) -> float:
    """Discount netted from a line: its allocations when present, else its total discount."""
    allocations = item.get("discount_allocations") or []
    if allocations:
        return sum(parse_float(a.get("amount")) for a in allocations)
    return parse_float(item.get("total_discount"))


def build_line_item(
    trx_no: str,
    line_no: int,
    item: Dict[str, Any],
    item_code: Optional[str],
) -> Dict[str, Any]:
    unit_price = parse_float(item.get("price"))
    quantity = parse_int(item.get("quantity"))
    sub_amount = unit_price * quantity
    total_discount = parse_float(item.get("total_discount"))

    return {
        "trx_no": trx_no,
        "line_no": line_no,
        "item_code": item_code,
        "item_name": truncate(item.get("name") or item.get("title"), 40),
        "trx_type": "S",
        "unit_price": unit_price,
        "item_qty": quantity,
        "item_discount": total_discount / sub_amount if sub_amount else 0,  # fraction off
        "trx_sub_amt": sub_amount,
        "trx_sub_disamt": sub_amount - line_discount(item),
        "mem_a_dis": 0,
        "dis_amt": 0,
        "salesman_code": settings.POS_SALESMAN_CODE,
        "sh_code": settings.POS_CASHIER_NO,
    }


def build_handling_line(trx_no: str, line_no: int, shipping_line: Dict[str, Any]) -> Dict[str, Any]:
    price = parse_float(shipping_line.get("discounted_price") or shipping_line.get("price"))
    return {
        "trx_no": trx_no,
        "line_no": line_no,
        "item_code": settings.POS_HANDLING_ITEM_CODE,
        "item_name": truncate(shipping_line.get("title") or "Handling charge", 40),
        "trx_type": "S",
        "unit_price": price,
        "item_qty": 1,
        "item_discount": 0,
        "trx_sub_amt": price,
        "trx_sub_disamt": price,
        "mem_a_dis": 0,
        "dis_amt": 0,
        "salesman_code": settings.POS_SALESMAN_CODE,
        "sh_code": settings.POS_CASHIER_NO,
    }


class OrderTranslator:
    """Maps storefront orders to POS documents, resolving item codes through the catalog mirror."""

    def __init__(self, catalog=None):
        if catalog is None:
            from app.services.catalog_service import catalog_service as catalog
        self.catalog = catalog

    async def resolve_item_code(self, item: Dict[str, Any]) -> Optional[str]:
        variant = None
        variant_id = item.get("variant_id")
        if variant_id is not None:
            variant = await self.catalog.get_variant(variant_id)
        if variant is not None and variant.pos_code:
            return variant.pos_code
        return item.get("sku")

    async def translate(self, order: Dict[str, Any], trx_no: Optional[str] = None) -> Dict[str, Any]:
        trx_no = trx_no or trx_no_for_order(order)
        total = parse_float(order.get("total_price"))
        currency = order.get("currency")

        header = {
            "trx_no": trx_no,
            "trx_type": "SAL",
            "doc_type": "SA1",
            "trx_date": format_pos_date(order),
            "user_member": resolve_customer(order),
            "curr_code": currency,
            "exch_rate": 1,
            "trx_bas_amt": total,
            "trx_status": "T",
            "sh_code": settings.POS_SHOP_CODE,
            "wh_code_from": settings.POS_SHOP_CODE,
            "wh_code_to": "",
            "salesman_code": settings.POS_SALESMAN_CODE,
            "chg_rate": 1,
            "cashier": settings.POS_CASHIER,
            "cashi_no": settings.POS_CASHIER_NO,
        }

        lines = []
        for item in order.get("line_items") or []:
            code = await self.resolve_item_code(item)
            lines.append(build_line_item(trx_no, len(lines) + 1, item, code))
        for shipping_line in order.get("shipping_lines") or []:
            lines.append(build_handling_line(trx_no, len(lines) + 1, shipping_line))

        payments = [{
            "trx_no": trx_no,
            "line_no": 1,
            "pay_code": payment_code(order),
            "pay_acc_amt": total,
            "pay_bas_amt": total,
            "curr_code": currency,
            "exch_rate": 1,
            "is_cash": "H",
        }]

        return {"hdr": header, "dat": lines, "pay": payments}
