from datetime import datetime

import pytest

from masapos.utils.money import from_cents, to_cents, to_decimal
from masapos.utils.time_utils import day_range_start, start_of_day


def test_to_cents_rounds_half_up():
    assert to_cents(20) == 2000
    assert to_cents("12.5") == 1250
    assert to_cents(0.125) == 13
    assert to_cents(0.1 + 0.2) == 30


def test_to_decimal_rejects_garbage():
    with pytest.raises(ValueError):
        to_decimal("ten")
    with pytest.raises(ValueError):
        to_decimal(float("nan"))


def test_from_cents():
    assert from_cents(4000) == 40.0
    assert from_cents(1999) == 19.99
    assert from_cents(None) == 0.0


def test_start_of_day_and_window():
    now = datetime(2024, 3, 10, 17, 45, 12)
    assert start_of_day(now) == datetime(2024, 3, 10)
    assert day_range_start(1, now) == datetime(2024, 3, 10)
    assert day_range_start(7, now) == datetime(2024, 3, 4)
