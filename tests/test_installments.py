# tests/test_installments.py

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError
from app.services.installments import generate_installment_options, get_product_installment_options

NOW = datetime(2025, 3, 10, 6, 0, tzinfo=timezone.utc)


def test_price_3399_at_100_per_day():
    options = generate_installment_options(3399, now=NOW)
    option = next(o for o in options if o.amount == 100)

    assert option.periods == 34
    assert option.final_payment == 99
    assert option.total_amount == 3399
    assert option.period_unit == "day"
    assert option.start_date == NOW
    assert option.end_date == NOW + timedelta(days=34)


def test_menu_follows_configured_rates_and_recommends_lowest():
    options = generate_installment_options(1000, now=NOW)

    assert [o.amount for o in options] == [100, 200, 300, 500]
    assert [o.is_recommended for o in options] == [True, False, False, False]


@pytest.mark.parametrize("price", [1, 99, 100, 101, 250, 999, 1000, 3399, 12345, 100000])
def test_payments_always_sum_to_price(price):
    for option in generate_installment_options(price, now=NOW):
        assert option.amount * (option.periods - 1) + option.final_payment == price
        assert 0 < option.final_payment <= option.amount


def test_price_below_rate_is_one_payment():
    option = generate_installment_options(50, now=NOW)[0]
    assert option.periods == 1
    assert option.final_payment == 50


@pytest.mark.parametrize("price", [0, -5, None, "abc", float("nan"), float("inf"), True])
def test_invalid_price_gives_empty_menu(price):
    assert generate_installment_options(price, now=NOW) == []


def test_fractional_price_rounds_half_up_to_whole_units():
    option = generate_installment_options(149.5, now=NOW)[0]
    assert option.total_amount == 150
    assert option.periods == 2
    assert option.final_payment == 50


def test_product_options(db_session, make_product):
    product = make_product(price=3399, name="Fridge")
    result = get_product_installment_options(db_session, product.id, now=NOW)

    assert result.product_id == product.id
    assert result.price == 3399
    assert len(result.options) == 4


def test_product_options_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        get_product_installment_options(db_session, 999)
