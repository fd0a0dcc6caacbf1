from datetime import datetime, timezone

import pytest

from tacalc.schema import (
    ActionKind,
    BooleanParameter,
    ComparisonOperator,
    CompoundCondition,
    Condition,
    ConstantSource,
    FloatParameter,
    IndicatorSource,
    IntegerParameter,
    LogicalOperator,
    ParameterSource,
    PriceSource,
    RiskManagement,
    RuleAction,
    SimpleCondition,
    Strategy,
    StrategyIndicator,
    StrategyPerformance,
    StrategyRule,
    StringParameter,
    parse_condition,
    parse_parameter,
    parse_value_source,
)


def _sample_dict():
    return {
        "id": "6f1c2a9e-8f3b-4c2d-9a7e-1b2c3d4e5f60",
        "name": "RSI bounce",
        "description": "Buy oversold",
        "version": "1.0.0",
        "author": "tester",
        "created_at": "2024-01-02T03:04:05Z",
        "updated_at": "2024-01-03T03:04:05Z",
        "enabled": True,
        "assets": ["BTCUSDT"],
        "timeframes": ["1h"],
        "indicators": [
            {
                "id": "rsi14",
                "indicator_type": "oscillator",
                "indicator_name": "RSI",
                "parameters": {"period": 14},
                "description": "RSI",
            }
        ],
        "rules": [
            {
                "id": "r1",
                "name": "enter",
                "condition": {
                    "type": "composite",
                    "operator": "and",
                    "conditions": [
                        {
                            "type": "simple",
                            "condition": {
                                "left": {"type": "indicator", "indicator_id": "rsi14"},
                                "operator": "crosses_above",
                                "right": {"type": "constant", "value": 30},
                            },
                        },
                        {
                            "type": "simple",
                            "condition": {
                                "left": {"type": "price", "property": "close", "offset": 1},
                                "operator": ">",
                                "right": {"type": "parameter", "parameter_id": "floor"},
                            },
                        },
                    ],
                },
                "action": {"type": "enter_long", "size_percent": 10.0},
            }
        ],
        "parameters": {
            "floor": {"type": "float", "value": 1.5, "min": 0, "max": 10, "description": "f"},
            "len": {"type": "integer", "value": 3, "min": 1, "max": 9, "description": "l"},
        },
        "risk_management": RiskManagement().to_dict(),
    }


def test_enum_wire_values():
    assert ComparisonOperator("crosses_below") is ComparisonOperator.CROSSES_BELOW
    assert ComparisonOperator.NOT_EQUAL.value == "!="
    assert LogicalOperator("or") is LogicalOperator.OR


def test_risk_management_defaults():
    rm = RiskManagement()
    assert (rm.max_risk_per_trade, rm.max_total_risk, rm.default_position_size) == (2.0, 10.0, 5.0)
    assert rm.default_stop_loss == 2.0
    assert rm.default_take_profit == 6.0
    assert rm.use_trailing_stop is False
    assert rm.trailing_stop_percent is None


def test_strategy_defaults():
    s = Strategy()
    assert s.name == "New Strategy"
    assert s.version == "1.0.0"
    assert s.enabled is True
    assert s.performance is None
    assert len(s.id) == 36


def test_strategy_from_dict_parses_nested_types():
    s = Strategy.from_dict(_sample_dict())
    assert s.created_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    cond = s.rules[0].condition
    assert isinstance(cond, CompoundCondition)
    assert cond.operator is LogicalOperator.AND
    first = cond.conditions[0].condition
    assert first.left == IndicatorSource("rsi14")
    assert first.operator is ComparisonOperator.CROSSES_ABOVE
    assert first.right == ConstantSource(30)
    second = cond.conditions[1].condition
    assert second.left == PriceSource("close", 1)
    assert second.right == ParameterSource("floor")
    assert s.rules[0].action == RuleAction(ActionKind.ENTER_LONG, size_percent=10.0)
    assert s.rules[0].priority == 0
    assert s.parameters["floor"].min == 0.0
    assert isinstance(s.parameters["len"], IntegerParameter)
    assert s.metadata == {}


def test_strategy_round_trip_dict_and_json():
    s = Strategy.from_dict(_sample_dict())
    again = Strategy.from_json(s.to_json())
    assert again == s
    assert again.to_dict() == s.to_dict()


def test_timestamps_serialise_with_z_suffix():
    s = Strategy.from_dict(_sample_dict())
    assert s.to_dict()["created_at"] == "2024-01-02T03:04:05Z"


def test_nanosecond_timestamp_is_truncated_to_microseconds():
    data = _sample_dict()
    data["created_at"] = "2024-01-02T03:04:05.123456789Z"
    s = Strategy.from_dict(data)
    assert s.created_at.microsecond == 123456


def test_naive_timestamp_rejected():
    data = _sample_dict()
    data["created_at"] = "2024-01-02T03:04:05"
    with pytest.raises(ValueError):
        Strategy.from_dict(data)


def test_performance_omitted_when_absent_and_kept_when_present():
    s = Strategy.from_dict(_sample_dict())
    assert "performance" not in s.to_dict()
    s.performance = StrategyPerformance(total_trades=4, win_rate=50.0)
    restored = Strategy.from_dict(s.to_dict())
    assert restored.performance == s.performance


def test_missing_required_field_raises():
    data = _sample_dict()
    del data["name"]
    with pytest.raises(ValueError, match="name"):
        Strategy.from_dict(data)


def test_invalid_json_raises_value_error():
    with pytest.raises(ValueError):
        Strategy.from_json("{not json")


def test_unknown_value_source_type():
    with pytest.raises(ValueError):
        parse_value_source({"type": "volume_profile"})


def test_unknown_condition_type_and_operator():
    with pytest.raises(ValueError):
        parse_condition({"type": "xor", "conditions": []})
    with pytest.raises(ValueError):
        Condition.from_dict(
            {
                "left": {"type": "constant", "value": 1},
                "operator": "~",
                "right": {"type": "constant", "value": 2},
            }
        )


def test_simple_condition_round_trip():
    cond = SimpleCondition(
        Condition(PriceSource("high"), ComparisonOperator.LESS_THAN_OR_EQUAL, ConstantSource(5))
    )
    assert parse_condition(cond.to_dict()) == cond


def test_rule_action_shapes():
    stop = RuleAction.from_dict({"type": "set_stop_loss", "percent": 2})
    assert stop.percent == 2.0
    assert stop.to_dict() == {"type": "set_stop_loss", "percent": 2.0, "price": None}
    exit_short = RuleAction.from_dict({"type": "exit_short"})
    assert exit_short.to_dict() == {"type": "exit_short", "size_percent": None}


def test_rule_action_rejects_mismatched_fields():
    with pytest.raises(ValueError):
        RuleAction(ActionKind.ENTER_SHORT, price=10.0)
    with pytest.raises(ValueError):
        RuleAction(ActionKind.SET_TAKE_PROFIT, size_percent=5.0)
    with pytest.raises(ValueError):
        RuleAction.from_dict({"type": "hold"})


@pytest.mark.parametrize(
    "param",
    [
        IntegerParameter(5, 1, 10, "i"),
        FloatParameter(0.5, 0.0, 1.0, "f", step=0.1),
        BooleanParameter(True, "b"),
        StringParameter("fast", "s", options=["fast", "slow"]),
    ],
)
def test_parameter_round_trip(param):
    assert parse_parameter(param.to_dict()) == param


def test_integer_parameter_rejects_float_value():
    with pytest.raises(ValueError):
        parse_parameter({"type": "integer", "value": 1.5, "min": 0, "max": 2, "description": ""})


def test_rule_and_indicator_round_trip():
    rule = StrategyRule(
        id="r",
        name="n",
        condition=SimpleCondition(
            Condition(IndicatorSource("a", "k", 2), ComparisonOperator.EQUAL, ConstantSource(None))
        ),
        action=RuleAction(ActionKind.SET_TAKE_PROFIT, price=100.0),
        priority=3,
        description="d",
    )
    assert StrategyRule.from_dict(rule.to_dict()) == rule
    ind = StrategyIndicator("x", "overlap", "SMA", {"period": 20}, "sma")
    assert StrategyIndicator.from_dict(ind.to_dict()) == ind


def test_performance_requires_integer_counts():
    data = StrategyPerformance().to_dict()
    data["total_trades"] = 1.5
    with pytest.raises(ValueError):
        StrategyPerformance.from_dict(data)