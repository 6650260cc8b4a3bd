import pytest
from unittest.mock import AsyncMock, MagicMock
from app.models.db_models import CatalogVariant
from app.services.order_translator import (
    OrderTranslator,
    build_handling_line,
    build_line_item,
    create_trx_no,
    format_pos_date,
    payment_code,
    resolve_customer,
    trx_no_for_order,
)
from app.utils.parsing import parse_float, parse_int


def test_trx_no_uses_order_month_and_pads_number(mock_settings, sample_order):
    assert trx_no_for_order(sample_order) == "SW04W2301000500"


def test_trx_no_month_follows_pos_timezone(mock_settings):
    # 20:00 New York on Jan 31 is already Feb 1 in Hong Kong
    order = {"order_number": 1234, "created_at": "2023-01-31T20:00:00-05:00"}
    assert trx_no_for_order(order) == "SW04W2302001234"


def test_create_trx_no_keeps_last_six_digits(mock_settings):
    from datetime import datetime
    assert create_trx_no(1234567, on=datetime(2024, 11, 3)) == "SW04W2411234567"


def test_pos_date_is_rendered_in_pos_timezone(mock_settings):
    assert format_pos_date({"created_at": "2023-01-15T02:00:00Z"}) == "2023-01-15  10:00:00"


@pytest.mark.parametrize("customer, expected", [
    ({"phone": "+85291234567", "email": "amy@example.com", "first_name": "Amy"}, "+85291234567"),
    ({"phone": None, "email": "amy@example.com", "first_name": "Amy"}, "amy@example.com"),
    ({"email": "", "first_name": "Amy", "last_name": "Chan", "id": 7}, "Amy Chan"),
    ({"id": 7}, "7"),
    ({}, "Anonymous"),
    (None, "Anonymous"),
    ({"email": "averyverylongaddress@example.com"}, "averyverylongad"),
])
def test_resolve_customer_priority(customer, expected):
    assert resolve_customer({"customer": customer}) == expected


@pytest.mark.parametrize("order, expected", [
    ({"payment_details": {"credit_card_company": "Visa"}}, "VI"),
    ({"payment_details": {"credit_card_company": "Mastercard"}}, "MC"),
    ({"gateway": "paypal"}, "PL"),
    ({"payment_gateway_names": ["shopify_payments"]}, "SP"),
    ({"gateway": "cash_on_delivery"}, "OT"),
    ({}, "OT"),
])
def test_payment_code(order, expected):
    assert payment_code(order) == expected


def test_line_discount_fields(mock_settings):
    item = {
        "name": "Rubber Duck",
        "price": "30.00",
        "quantity": 1,
        "total_discount": "6.00",
        "discount_allocations": [{"amount": "6.00"}],
    }
    line = build_line_item("SW04W2301000500", 1, item, "489001")

    assert line["trx_sub_amt"] == 30.0
    assert line["trx_sub_disamt"] == 24.0
    assert line["item_discount"] == pytest.approx(0.2)


def test_zero_priced_line_has_no_discount_fraction(mock_settings):
    line = build_line_item("T", 1, {"price": "0.00", "quantity": 2, "total_discount": "0"}, "X")
    assert line["item_discount"] == 0
    assert line["trx_sub_amt"] == 0


@pytest.mark.asyncio
async def test_translate_builds_header_lines_and_payment(mock_settings, sample_order, empty_catalog):
    document = await OrderTranslator(catalog=empty_catalog).translate(sample_order)

    header = document["hdr"]
    assert header["trx_no"] == "SW04W2301000500"
    assert header["trx_date"] == "2023-01-15  10:00:00"
    assert header["user_member"] == "amy@example.com"
    assert header["trx_bas_amt"] == 32.0
    assert header["curr_code"] == "HKD"

    assert [line["line_no"] for line in document["dat"]] == [1, 2]
    product_line, handling_line = document["dat"]
    assert product_line["item_code"] == "SKU-A"
    assert handling_line["item_code"] == mock_settings.POS_HANDLING_ITEM_CODE
    assert handling_line["unit_price"] == 8.0

    assert len(document["pay"]) == 1
    assert document["pay"][0]["pay_code"] == "SP"
    assert document["pay"][0]["pay_acc_amt"] == 32.0


@pytest.mark.asyncio
async def test_item_code_prefers_catalog_barcode(mock_settings, sample_order):
    catalog = MagicMock()
    catalog.get_variant = AsyncMock(
        return_value=CatalogVariant(variant_id=101, product_id=1, inventory_item_id=11, sku="SKU-A", barcode=" 489001 ")
    )
    document = await OrderTranslator(catalog=catalog).translate(sample_order)

    assert document["dat"][0]["item_code"] == "489001"
    catalog.get_variant.assert_awaited_once_with(101)


@pytest.mark.asyncio
async def test_item_code_falls_back_to_catalog_sku(mock_settings, sample_order):
    catalog = MagicMock()
    catalog.get_variant = AsyncMock(
        return_value=CatalogVariant(variant_id=101, product_id=1, inventory_item_id=11, sku="SKU-MIRROR", barcode="")
    )
    document = await OrderTranslator(catalog=catalog).translate(sample_order)

    assert document["dat"][0]["item_code"] == "SKU-MIRROR"


@pytest.mark.asyncio
async def test_explicit_trx_no_is_kept(mock_settings, sample_order, empty_catalog):
    document = await OrderTranslator(catalog=empty_catalog).translate(sample_order, trx_no="SW04W2212000500")

    assert document["hdr"]["trx_no"] == "SW04W2212000500"
    assert {line["trx_no"] for line in document["dat"]} == {"SW04W2212000500"}
    assert document["pay"][0]["trx_no"] == "SW04W2212000500"


@pytest.mark.parametrize("value, expected", [
    ("12.50", 12.5),
    ("3 pcs", 3.0),
    ("", 0.0),
    (None, 0.0),
    ("abc", 0.0),
    (7, 7.0),
])
def test_parse_float_is_lenient(value, expected):
    assert parse_float(value) == expected


def test_parse_int_truncates():
    assert parse_int("4.9") == 4
    assert parse_int(None) == 0


def test_total_discount_used_without_allocations(mock_settings):
    item = {"price": "10", "quantity": 3, "total_discount": "6"}
    line = build_line_item("SW04W2401000123", 1, item, "S1")

    assert line["trx_sub_amt"] == 30
    assert line["trx_sub_disamt"] == 24
    assert line["item_discount"] == pytest.approx(0.2)


def test_trx_no_is_stable_across_calls(mock_settings, sample_order):
    assert trx_no_for_order(sample_order) == trx_no_for_order(dict(sample_order))


@pytest.mark.parametrize("shipping_line, expected", [
    ({"price": "10.00", "discounted_price": "8.00"}, 8.0),
    ({"price": "10.00", "discounted_price": None}, 10.0),
    ({"price": "10.00"}, 10.0),
    ({"price": "10.00", "discounted_price": "0.00"}, 0.0),
])
def test_handling_line_price_falls_back_to_list_price(mock_settings, shipping_line, expected):
    line = build_handling_line("SW04W2301000500", 2, shipping_line)
    assert line["unit_price"] == expected
    assert line["trx_sub_amt"] == expected
