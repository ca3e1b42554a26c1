"""
Tests for price calculation.
"""

from decimal import Decimal

import pytest

from app.schemas.pricing import SelectedService
from app.services.pricing_service import calculate_price

from conftest import make_promotion


@pytest.mark.asyncio
async def test_price_with_services_and_override(db_session, test_instance, services):
    selected = [
        SelectedService(service_id=services["lunch"].id, quantity=1),
        SelectedService(service_id=services["transfer"].id, quantity=2),
    ]

    price = await calculate_price(db_session, test_instance.id, 2, selected)

    assert price.base_price == Decimal("100.00")
    assert price.base_price_total == Decimal("200.00")
    lines = {line.service_name: line for line in price.services}
    assert lines["Lunch"].unit_price == Decimal("10.00")
    assert lines["Lunch"].sub_total == Decimal("20.00")
    # Tour override replaces the 20.00 list price
    assert lines["Airport transfer"].unit_price == Decimal("15.00")
    assert lines["Airport transfer"].total_quantity == 4
    assert lines["Airport transfer"].sub_total == Decimal("60.00")
    assert price.services_total == Decimal("80.00")
    assert price.sub_total_before_discount == Decimal("280.00")
    assert price.discount_amount == Decimal("0.00")
    assert price.grand_total == Decimal("280.00")
    assert price.currency == "VND"


@pytest.mark.asyncio
async def test_unknown_and_inactive_services_are_skipped(db_session, test_instance, services):
    selected = [
        SelectedService(service_id=services["retired"].id),
        SelectedService(service_id=9999),
    ]

    price = await calculate_price(db_session, test_instance.id, 1, selected)

    assert price.services == []
    assert price.grand_total == Decimal("100.00")


@pytest.mark.asyncio
async def test_price_applies_best_promotion(db_session, test_instance):
    await make_promotion(db_session, "Ten percent", [("Percent", 10)])

    price = await calculate_price(db_session, test_instance.id, 3, [])

    assert price.sub_total_before_discount == Decimal("300.00")
    assert price.discount_amount == Decimal("30.00")
    assert price.promotion_name == "Ten percent"
    assert price.grand_total == Decimal("270.00")


@pytest.mark.asyncio
async def test_price_is_repeatable(db_session, test_instance, services):
    await make_promotion(db_session, "Ten percent", [("Percent", 10)])
    selected = [SelectedService(service_id=services["lunch"].id, quantity=3)]

    first = await calculate_price(db_session, test_instance.id, 2, selected)
    second = await calculate_price(db_session, test_instance.id, 2, selected)

    assert first == second


@pytest.mark.asyncio
async def test_price_unknown_instance(db_session):
    assert await calculate_price(db_session, 4242, 1, []) is None
