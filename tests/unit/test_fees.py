"""Fee estimator tests."""

import pytest

from remitflow.fees import FeeSchedule, estimate, format_units, to_units


def test_estimate_matches_worked_example():
    schedule = FeeSchedule(
        buy_fee_bps=100, swap_fee_bps=50, sell_fee_bps=100, exchange_rate=920_000
    )

    result = estimate(1_000_000, schedule)

    assert result.buy_fee == 10_000
    assert result.usdc_after_fee == 990_000
    assert result.raw_eurc == 910_800
    assert result.swap_fee == 4_554
    assert result.eurc_after_swap == 906_246
    assert result.sell_fee == 9_062
    assert result.eur_final == 897_184
    assert result.total_fees_usd == 10_000


def test_zero_fees_at_parity_is_identity():
    result = estimate(123_456_789, FeeSchedule())
    assert result.eur_final == 123_456_789


def test_each_stage_truncates():
    schedule = FeeSchedule(buy_fee_bps=1, swap_fee_bps=1, sell_fee_bps=1)
    # 1 bps of 9_999 units is 0.9999, floored to 0
    result = estimate(9_999, schedule)
    assert result.buy_fee == 0
    assert result.swap_fee == 0
    assert result.sell_fee == 0
    assert result.eur_final == 9_999


def test_estimate_is_monotonic_and_ordered():
    schedule = FeeSchedule(
        buy_fee_bps=250, swap_fee_bps=1000, sell_fee_bps=37, exchange_rate=870_123
    )
    previous = -1
    for amount in range(0, 50_000, 997):
        result = estimate(amount, schedule)
        assert result.eur_final >= previous
        previous = result.eur_final
        assert result.usdc_after_fee <= result.usd_amount
        assert result.raw_eurc <= result.usdc_after_fee
        assert result.eurc_after_swap <= result.raw_eurc
        assert result.eur_final <= result.eurc_after_swap


def test_estimate_rejects_non_integer_amounts():
    with pytest.raises(TypeError):
        estimate(1.5, FeeSchedule())
    with pytest.raises(TypeError):
        estimate(True, FeeSchedule())
    with pytest.raises(ValueError):
        estimate(-1, FeeSchedule())


def test_fee_schedule_caps_basis_points():
    FeeSchedule(buy_fee_bps=1000)
    with pytest.raises(ValueError):
        FeeSchedule(buy_fee_bps=1001)
    with pytest.raises(ValueError):
        FeeSchedule(sell_fee_bps=-1)


def test_unit_conversion():
    assert to_units("1.5") == 1_500_000
    assert to_units("100") == 100_000_000
    assert to_units("0.0000019") == 1
    assert format_units(1_500_000) == "1.5"
    assert format_units(897_184) == "0.897184"
    assert format_units(0) == "0.0"

    with pytest.raises(TypeError):
        to_units(1.5)
    with pytest.raises(ValueError):
        to_units("abc")


@pytest.mark.parametrize("amount", ["inf", "-Infinity", "NaN", "sNaN"])
def test_unit_conversion_rejects_non_finite(amount):
    with pytest.raises(ValueError):
        to_units(amount)


def test_unit_conversion_keeps_every_digit():
    amount = "123456789012345678901234567890.1234569"
    assert to_units(amount) == 123456789012345678901234567890123456
    assert to_units("9" * 40 + ".9999999") == int("9" * 40 + "999999")
