"""Trading strategy schema: conditions, rules, parameters and risk settings.

Every type converts to and from the JSON-compatible dictionaries used by the
strategy file format and the database columns.
"""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Union

# ---------------------------------------------------------------------------
# Field conversion helpers
# ---------------------------------------------------------------------------


def _mapping(data: Any, context: str) -> Mapping:
    if not isinstance(data, Mapping):
        raise ValueError(f"{context}: expected an object, got {type(data).__name__}")
    return data


def _field(data: Mapping, key: str, context: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"{context}: missing field '{key}'") from None


def _str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a string, got {value!r}")
    return value


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{name}' must be an integer, got {value!r}")
    return value


def _float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{name}' must be a number, got {value!r}")
    return float(value)


def _bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{name}' must be a boolean, got {value!r}")
    return value


def _str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"'{name}' must be a list of strings, got {value!r}")
    return [_str(item, name) for item in value]


def _optional(value: Any, convert: Callable[[Any, str], Any], name: str) -> Any:
    return None if value is None else convert(value, name)


def _enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    text = _str(value, name)
    try:
        return enum_cls(text)
    except ValueError:
        raise ValueError(f"unknown {name}: {text!r}") from None


def _parse_datetime(value: Any, name: str) -> datetime:
    text = _str(value, name).strip()
    normalised = re.sub(r"[zZ]$", "+00:00", text)
    normalised = re.sub(
        r"\.(\d+)",
        lambda m: "." + (m.group(1) + "000000")[:6],
        normalised,
        count=1,
    )
    try:
        parsed = datetime.fromisoformat(normalised)
    except ValueError:
        raise ValueError(f"'{name}' is not an RFC 3339 timestamp: {text!r}") from None
    if parsed.tzinfo is None:
        raise ValueError(f"'{name}' has no UTC offset: {text!r}")
    return parsed.astimezone(timezone.utc)


def _format_datetime(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class ComparisonOperator(str, Enum):
    """Operators comparing two values in a condition."""

    EQUAL = "="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    CROSSES_ABOVE = "crosses_above"
    CROSSES_BELOW = "crosses_below"


class LogicalOperator(str, Enum):
    """Operators combining several conditions."""

    AND = "and"
    OR = "or"


# ---------------------------------------------------------------------------
# Value sources
# ---------------------------------------------------------------------------


@dataclass
class IndicatorSource:
    """A value read from one of the strategy's indicators."""

    indicator_id: str
    property: str | None = None
    offset: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "indicator",
            "indicator_id": self.indicator_id,
            "property": self.property,
            "offset": self.offset,
        }


@dataclass
class PriceSource:
    """A value read from the candle: open, high, low, close or volume."""

    property: str
    offset: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": "price", "property": self.property, "offset": self.offset}


@dataclass
class ParameterSource:
    """A value taken from a tunable strategy parameter."""

    parameter_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "parameter", "parameter_id": self.parameter_id}


@dataclass
class ConstantSource:
    """A fixed JSON value."""

    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": "constant", "value": self.value}


ValueSource = Union[IndicatorSource, PriceSource, ParameterSource, ConstantSource]


def parse_value_source(data: Any) -> ValueSource:
    """Build a value source from its tagged dictionary form."""
    context = "value source"
    data = _mapping(data, context)
    kind = _field(data, "type", context)
    if kind == "indicator":
        return IndicatorSource(
            indicator_id=_str(_field(data, "indicator_id", context), "indicator_id"),
            property=_optional(data.get("property"), _str, "property"),
            offset=_optional(data.get("offset"), _int, "offset"),
        )
    if kind == "price":
        return PriceSource(
            property=_str(_field(data, "property", context), "property"),
            offset=_optional(data.get("offset"), _int, "offset"),
        )
    if kind == "parameter":
        return ParameterSource(
            parameter_id=_str(_field(data, "parameter_id", context), "parameter_id")
        )
    if kind == "constant":
        return ConstantSource(value=_field(data, "value", context))
    raise ValueError(f"unknown value source type: {kind!r}")


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass
class Condition:
    """A comparison between two value sources."""

    left: ValueSource
    operator: ComparisonOperator
    right: ValueSource

    def to_dict(self) -> dict[str, Any]:
        return {
            "left": self.left.to_dict(),
            "operator": ComparisonOperator(self.operator).value,
            "right": self.right.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Condition:
        context = "condition"
        data = _mapping(data, context)
        return cls(
            left=parse_value_source(_field(data, "left", context)),
            operator=_enum(ComparisonOperator, _field(data, "operator", context), "operator"),
            right=parse_value_source(_field(data, "right", context)),
        )


@dataclass
class SimpleCondition:
    """A rule condition made of a single comparison."""

    condition: Condition

    def to_dict(self) -> dict[str, Any]:
        return {"type": "simple", "condition": self.condition.to_dict()}


@dataclass
class CompoundCondition:
    """Several conditions joined by a logical operator."""

    operator: LogicalOperator
    conditions: list[SimpleCondition | CompoundCondition] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "composite",
            "operator": LogicalOperator(self.operator).value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


CompositeCondition = Union[SimpleCondition, CompoundCondition]


def parse_condition(data: Any) -> CompositeCondition:
    """Build a simple or compound condition from its tagged dictionary form."""
    context = "composite condition"
    data = _mapping(data, context)
    kind = _field(data, "type", context)
    if kind == "simple":
        return SimpleCondition(Condition.from_dict(_field(data, "condition", context)))
    if kind == "composite":
        children = _field(data, "conditions", context)
        if not isinstance(children, list):
            raise ValueError("'conditions' must be a list")
        return CompoundCondition(
            operator=_enum(LogicalOperator, _field(data, "operator", context), "operator"),
            conditions=[parse_condition(child) for child in children],
        )
    raise ValueError(f"unknown condition type: {kind!r}")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionKind(str, Enum):
    """What a rule does when its condition holds."""

    ENTER_LONG = "enter_long"
    ENTER_SHORT = "enter_short"
    EXIT_LONG = "exit_long"
    EXIT_SHORT = "exit_short"
    SET_STOP_LOSS = "set_stop_loss"
    SET_TAKE_PROFIT = "set_take_profit"


_SIZED_KINDS = frozenset(
    {ActionKind.ENTER_LONG, ActionKind.ENTER_SHORT, ActionKind.EXIT_LONG, ActionKind.EXIT_SHORT}
)


@dataclass
class RuleAction:
    """An action: position entries and exits carry a size, stop and target settings a level."""

    kind: ActionKind
    size_percent: float | None = None
    percent: float | None = None
    price: float | None = None

    def __post_init__(self) -> None:
        self.kind = ActionKind(self.kind)
        if self.kind in _SIZED_KINDS:
            if self.percent is not None or self.price is not None:
                raise ValueError(f"{self.kind.value} takes only size_percent")
        elif self.size_percent is not None:
            raise ValueError(f"{self.kind.value} takes only percent and price")

    def to_dict(self) -> dict[str, Any]:
        if self.kind in _SIZED_KINDS:
            return {"type": self.kind.value, "size_percent": self.size_percent}
        return {"type": self.kind.value, "percent": self.percent, "price": self.price}

    @classmethod
    def from_dict(cls, data: Any) -> RuleAction:
        context = "rule action"
        data = _mapping(data, context)
        kind = _enum(ActionKind, _field(data, "type", context), "action type")
        if kind in _SIZED_KINDS:
            return cls(kind, size_percent=_optional(data.get("size_percent"), _float, "size_percent"))
        return cls(
            kind,
            percent=_optional(data.get("percent"), _float, "percent"),
            price=_optional(data.get("price"), _float, "price"),
        )


# ---------------------------------------------------------------------------
# Tunable parameters
# ---------------------------------------------------------------------------


@dataclass
class IntegerParameter:
    value: int
    min: int
    max: int
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "integer", **asdict(self)}


@dataclass
class FloatParameter:
    value: float
    min: float
    max: float
    description: str
    step: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": "float", **asdict(self)}


@dataclass
class BooleanParameter:
    value: bool
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "boolean", **asdict(self)}


@dataclass
class StringParameter:
    value: str
    description: str
    options: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "string",
            "value": self.value,
            "options": None if self.options is None else list(self.options),
            "description": self.description,
        }


StrategyParameter = Union[IntegerParameter, FloatParameter, BooleanParameter, StringParameter]


def parse_parameter(data: Any) -> StrategyParameter:
    """Build a tunable parameter from its tagged dictionary form."""
    context = "strategy parameter"
    data = _mapping(data, context)
    kind = _field(data, "type", context)

    def get(key: str, convert: Callable[[Any, str], Any]) -> Any:
        return convert(_field(data, key, context), key)

    if kind == "integer":
        return IntegerParameter(
            value=get("value", _int),
            min=get("min", _int),
            max=get("max", _int),
            description=get("description", _str),
        )
    if kind == "float":
        return FloatParameter(
            value=get("value", _float),
            min=get("min", _float),
            max=get("max", _float),
            step=_optional(data.get("step"), _float, "step"),
            description=get("description", _str),
        )
    if kind == "boolean":
        return BooleanParameter(value=get("value", _bool), description=get("description", _str))
    if kind == "string":
        return StringParameter(
            value=get("value", _str),
            options=_optional(data.get("options"), _str_list, "options"),
            description=get("description", _str),
        )
    raise ValueError(f"unknown parameter type: {kind!r}")


# ---------------------------------------------------------------------------
# Indicators, rules, risk and performance
# ---------------------------------------------------------------------------


@dataclass
class StrategyIndicator:
    """An indicator configuration used by a strategy."""

    id: str
    indicator_type: str
    indicator_name: str
    parameters: Any
    description: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> StrategyIndicator:
        context = "strategy indicator"
        data = _mapping(data, context)
        return cls(
            id=_str(_field(data, "id", context), "id"),
            indicator_type=_str(_field(data, "indicator_type", context), "indicator_type"),
            indicator_name=_str(_field(data, "indicator_name", context), "indicator_name"),
            parameters=_field(data, "parameters", context),
            description=_str(_field(data, "description", context), "description"),
        )


@dataclass
class StrategyRule:
    """A condition paired with the action to take; lower priority runs first."""

    id: str
    name: str
    condition: CompositeCondition
    action: RuleAction
    priority: int = 0
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "condition": self.condition.to_dict(),
            "action": self.action.to_dict(),
            "priority": self.priority,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Any) -> StrategyRule:
        context = "strategy rule"
        data = _mapping(data, context)
        return cls(
            id=_str(_field(data, "id", context), "id"),
            name=_str(_field(data, "name", context), "name"),
            condition=parse_condition(_field(data, "condition", context)),
            action=RuleAction.from_dict(_field(data, "action", context)),
            priority=_int(data.get("priority", 0), "priority"),
            description=_str(data.get("description", ""), "description"),
        )


@dataclass
class RiskManagement:
    """Risk limits, all expressed as percentages."""

    max_risk_per_trade: float = 2.0
    max_total_risk: float = 10.0
    default_position_size: float = 5.0
    default_stop_loss: float | None = 2.0
    default_take_profit: float | None = 6.0
    use_trailing_stop: bool = False
    trailing_stop_activation: float | None = None
    trailing_stop_percent: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> RiskManagement:
        context = "risk management"
        data = _mapping(data, context)
        return cls(
            max_risk_per_trade=_float(_field(data, "max_risk_per_trade", context), "max_risk_per_trade"),
            max_total_risk=_float(_field(data, "max_total_risk", context), "max_total_risk"),
            default_position_size=_float(
                _field(data, "default_position_size", context), "default_position_size"
            ),
            default_stop_loss=_optional(data.get("default_stop_loss"), _float, "default_stop_loss"),
            default_take_profit=_optional(
                data.get("default_take_profit"), _float, "default_take_profit"
            ),
            use_trailing_stop=_bool(_field(data, "use_trailing_stop", context), "use_trailing_stop"),
            trailing_stop_activation=_optional(
                data.get("trailing_stop_activation"), _float, "trailing_stop_activation"
            ),
            trailing_stop_percent=_optional(
                data.get("trailing_stop_percent"), _float, "trailing_stop_percent"
            ),
        )


@dataclass
class StrategyPerformance:
    """Backtest metrics of a strategy."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    max_drawdown: float = 0.0
    profit_factor: float = 0.0
    sharpe_ratio: float = 0.0
    total_return: float = 0.0
    annualized_return: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    avg_profit_per_win: float = 0.0
    avg_loss_per_loss: float = 0.0
    avg_win_holding_period: float = 0.0
    avg_loss_holding_period: float = 0.0
    expectancy: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> StrategyPerformance:
        context = "strategy performance"
        data = _mapping(data, context)
        values = {}
        for f in fields(cls):
            convert = _int if f.type == "int" else _float
            values[f.name] = convert(_field(data, f.name, context), f.name)
        return cls(**values)


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


@dataclass
class Strategy:
    """A complete trading strategy definition."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "New Strategy"
    description: str = ""
    version: str = "1.0.0"
    author: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    enabled: bool = True
    assets: list[str] = field(default_factory=list)
    timeframes: list[str] = field(default_factory=list)
    indicators: list[StrategyIndicator] = field(default_factory=list)
    rules: list[StrategyRule] = field(default_factory=list)
    parameters: dict[str, StrategyParameter] = field(default_factory=dict)
    risk_management: RiskManagement = field(default_factory=RiskManagement)
    performance: StrategyPerformance | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "author": self.author,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
            "enabled": self.enabled,
            "assets": list(self.assets),
            "timeframes": list(self.timeframes),
            "indicators": [i.to_dict() for i in self.indicators],
            "rules": [r.to_dict() for r in self.rules],
            "parameters": {name: p.to_dict() for name, p in self.parameters.items()},
            "risk_management": self.risk_management.to_dict(),
        }
        if self.performance is not None:
            data["performance"] = self.performance.to_dict()
        data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Strategy:
        context = "strategy"
        data = _mapping(data, context)

        def get(key: str) -> Any:
            return _field(data, key, context)

        indicators = get("indicators")
        rules = get("rules")
        if not isinstance(indicators, list):
            raise ValueError("'indicators' must be a list")
        if not isinstance(rules, list):
            raise ValueError("'rules' must be a list")
        parameters = _mapping(get("parameters"), "parameters")
        metadata = _mapping(data.get("metadata", {}), "metadata")
        performance = data.get("performance")

        return cls(
            id=_str(get("id"), "id"),
            name=_str(get("name"), "name"),
            description=_str(get("description"), "description"),
            version=_str(get("version"), "version"),
            author=_str(get("author"), "author"),
            created_at=_parse_datetime(get("created_at"), "created_at"),
            updated_at=_parse_datetime(get("updated_at"), "updated_at"),
            enabled=_bool(get("enabled"), "enabled"),
            assets=_str_list(get("assets"), "assets"),
            timeframes=_str_list(get("timeframes"), "timeframes"),
            indicators=[StrategyIndicator.from_dict(i) for i in indicators],
            rules=[StrategyRule.from_dict(r) for r in rules],
            parameters={_str(k, "parameter name"): parse_parameter(v) for k, v in parameters.items()},
            risk_management=RiskManagement.from_dict(get("risk_management")),
            performance=None if performance is None else StrategyPerformance.from_dict(performance),
            metadata=dict(metadata),
        )

    def to_json(self) -> str:
        """Serialise to pretty-printed JSON."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> Strategy:
        """Parse a strategy from JSON text; raises ValueError on bad input."""
        return cls.from_dict(json.loads(text))