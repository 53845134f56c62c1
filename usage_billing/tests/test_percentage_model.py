from decimal import Decimal

import pytest

from usage_billing.aggregation import AggregationResult
from usage_billing.charge_models import PercentageChargeModel, PercentageProperties
from usage_billing.result import Failure, Success, ValidationFailure


def _props(**overrides):
    raw = {
        "rate": "1.3",
        "fixed_amount": "2.0",
        "free_units_per_events": 3,
        "free_units_per_total_aggregation": "250.0",
    }
    raw.update(overrides)
    return raw


def _apply(props, agg):
    result = PercentageChargeModel().apply(props, agg)
    assert isinstance(result, Success), result
    return result.value


def test_reference_scenario_uses_the_stricter_free_bound(reference_aggregation):
    fee = _apply(_props(), reference_aggregation)

    assert fee.free_units_consumed == 2
    assert fee.units_billed == 2
    assert fee.amount == (Decimal(800) - Decimal(250)) * Decimal("1.3") / 100 + 2 * Decimal("2.0")
    assert fee.amount == Decimal("11.15")
    assert fee.breakdown["percentage_threshold"] == Decimal("250.0")


def test_without_aggregation_bound_threshold_is_running_total_of_last_free_event(reference_aggregation):
    fee = _apply(_props(free_units_per_total_aggregation=None), reference_aggregation)

    assert fee.free_units_consumed == 3
    assert fee.breakdown["percentage_threshold"] == Decimal(400)
    assert fee.amount == Decimal("7.2")


def test_without_event_bound_aggregation_bound_decides(reference_aggregation):
    fee = _apply(_props(free_units_per_events=None), reference_aggregation)

    assert fee.free_units_consumed == 2
    assert fee.amount == Decimal("11.15")


def test_aggregation_bound_above_last_running_total_is_capped(reference_aggregation):
    fee = _apply(_props(free_units_per_total_aggregation="500.0"), reference_aggregation)

    assert fee.free_units_consumed == 3
    assert fee.breakdown["percentage_threshold"] == Decimal(400)
    assert fee.amount == Decimal("7.2")


def test_free_units_not_set_bills_everything():
    agg = AggregationResult.build(total_usage=800, event_count=4, running_totals=[])
    fee = _apply(_props(free_units_per_events=None, free_units_per_total_aggregation=None), agg)

    assert fee.free_units_consumed == 0
    assert fee.amount == Decimal(800) * Decimal("1.3") / 100 + 4 * Decimal("2.0")


def test_rate_zero_charges_only_the_fixed_fee(reference_aggregation):
    fee = _apply(
        _props(rate="0", free_units_per_events=None, free_units_per_total_aggregation=None),
        reference_aggregation,
    )

    assert fee.amount == 4 * Decimal("2.0")


def test_zero_usage_returns_zero():
    agg = AggregationResult.build(total_usage=0, event_count=0)
    fee = _apply(_props(), agg)

    assert fee.amount == 0
    assert fee.units_billed == 0


def test_more_free_events_than_events_waives_everything():
    agg = AggregationResult.build(total_usage=400, event_count=4, running_totals=[50, 150, 400])
    fee = _apply(_props(free_units_per_events=5, free_units_per_total_aggregation=None), agg)

    assert fee.amount == 0
    assert fee.free_units_consumed == 4
    assert fee.units_billed == 0


def test_index_past_running_totals_reads_as_total_usage(reference_aggregation):
    # 4 free events -> index 3, which the history omits; threshold must be total_usage
    fee = _apply(_props(free_units_per_events=4, free_units_per_total_aggregation=None), reference_aggregation)

    assert fee.breakdown["percentage_threshold"] == Decimal(800)
    assert fee.amount == 0


def test_zero_free_events_leaves_threshold_at_zero(reference_aggregation):
    fee = _apply(_props(free_units_per_events=0, free_units_per_total_aggregation=None), reference_aggregation)

    assert fee.free_units_consumed == 0
    assert fee.breakdown["percentage_threshold"] == 0
    assert fee.amount == Decimal("10.4") + Decimal("8.0")


def test_typed_properties_are_accepted(reference_aggregation):
    props = PercentageProperties(
        rate=Decimal("1.3"),
        fixed_amount=Decimal("2.0"),
        free_units_per_events=3,
        free_units_per_total_aggregation=Decimal("250.0"),
    )

    assert _apply(props, reference_aggregation).amount == Decimal("11.15")


def test_typed_properties_with_floats_are_normalized(reference_aggregation):
    props = PercentageProperties(rate=1.3, fixed_amount=2.0, free_units_per_events=3, free_units_per_total_aggregation=250.0)

    assert props.rate == Decimal("1.3")
    assert _apply(props, reference_aggregation).amount == Decimal("11.15")


def test_typed_properties_fill_defaults(reference_aggregation):
    fee = _apply(PercentageProperties(rate="1.3", fixed_amount=None), reference_aggregation)

    assert fee.breakdown["fixed_fee_amount"] == 0
    assert fee.amount == Decimal("10.4")


@pytest.mark.parametrize(
    "props,field,message",
    [
        (PercentageProperties(rate=None), "rate", "value_is_mandatory"),
        (PercentageProperties(rate="abc"), "rate", "invalid_value ('abc')"),
        (PercentageProperties(rate=1.3, free_units_per_events=2.5), "free_units_per_events", "invalid_value (2.5)"),
        (PercentageProperties(rate=1.3, free_units_per_events=True), "free_units_per_events", "invalid_value (True)"),
        (PercentageProperties(rate=-1.3), "rate", "invalid_value (must be >= 0)"),
    ],
)
def test_invalid_typed_properties_are_a_validation_failure(reference_aggregation, props, field, message):
    result = PercentageChargeModel().apply(props, reference_aggregation)

    assert isinstance(result, Failure)
    assert result.error.messages[field] == [message]


def test_apply_is_idempotent(reference_aggregation):
    model = PercentageChargeModel()
    first = model.apply(_props(), reference_aggregation)
    second = model.apply(_props(), reference_aggregation)

    assert first == second
    assert str(first.value.amount) == str(second.value.amount)


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"rate": "-1"}, "rate"),
        ({"fixed_amount": "-0.5"}, "fixed_amount"),
        ({"free_units_per_events": -1}, "free_units_per_events"),
        ({"free_units_per_total_aggregation": "-10"}, "free_units_per_total_aggregation"),
        ({"rate": "abc"}, "rate"),
        ({"free_units_per_events": "2.5"}, "free_units_per_events"),
    ],
)
def test_invalid_configuration_is_a_validation_failure(reference_aggregation, overrides, field):
    result = PercentageChargeModel().apply(_props(**overrides), reference_aggregation)

    assert isinstance(result, Failure)
    assert isinstance(result.error, ValidationFailure)
    assert field in result.error.messages


def test_missing_rate_is_reported():
    result = PercentageChargeModel().apply({"fixed_amount": "1"}, AggregationResult())

    assert isinstance(result, Failure)
    assert result.error.messages == {"rate": ["value_is_mandatory"]}


@pytest.mark.parametrize(
    "total,count,history",
    [
        (Decimal("0"), 0, []),
        (Decimal("10"), 1, []),
        (Decimal("1000"), 5, [100, 200, 300, 400]),
        (Decimal("1000"), 5, [100, 200, 300, 400, 1000]),
        (Decimal("3.5"), 3, [1, 1]),
    ],
)
@pytest.mark.parametrize("free_events", [None, 0, 1, 2, 10])
@pytest.mark.parametrize("free_total", [None, "0", "150", "5000"])
def test_amount_is_never_negative(total, count, history, free_events, free_total):
    agg = AggregationResult.build(total_usage=total, event_count=count, running_totals=history)
    fee = _apply(_props(free_units_per_events=free_events, free_units_per_total_aggregation=free_total), agg)

    assert fee.amount >= 0
    assert 0 <= fee.free_units_consumed <= count
