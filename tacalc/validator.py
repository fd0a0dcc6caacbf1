"""Structural checks of a strategy definition, reported as errors and warnings."""

from __future__ import annotations

import math
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from tacalc.schema import (
    CompositeCondition,
    CompoundCondition,
    Condition,
    IndicatorSource,
    PriceSource,
    RiskManagement,
    SimpleCondition,
    Strategy,
    StrategyIndicator,
    ValueSource,
)

_KNOWN_INDICATOR_TYPES = frozenset({"oscillator", "overlap", "volume", "volatility", "pattern"})
_PRICE_PROPERTIES = frozenset({"open", "high", "low", "close", "volume"})

_PERIOD_ONLY = frozenset({"SMA", "EMA", "WMA", "TEMA", "ATR", "NATR"})
_REQUIRED_GROUPS = {
    "MACD": ("fast_period", "slow_period", "signal_period"),
    "BBANDS": ("period", "deviation_up", "deviation_down"),
    "STOCH": ("k_period", "d_period", "slowing"),
}


class StrategyValidationError(ValueError):
    """Raised when a validated strategy has errors."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Strategy validation failed: {', '.join(self.errors)}")


@dataclass
class ValidationResult:
    """Errors and warnings collected while validating a strategy."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(str(message))

    def add_warning(self, message: str) -> None:
        self.warnings.append(str(message))

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def raise_for_errors(self) -> None:
        """Raise StrategyValidationError if any error was recorded."""
        if self.errors:
            raise StrategyValidationError(self.errors)

    def summary(self) -> str:
        """A numbered, human-readable list of errors and warnings."""
        parts: list[str] = []
        if self.errors:
            parts.append(_section("Errors", self.errors))
        if self.warnings:
            parts.append(_section("Warnings", self.warnings))
        if not parts:
            return "Strategy validation passed without issues."
        return "\n".join(parts)


def _section(title: str, messages: list[str]) -> str:
    lines = [f"{title} ({len(messages)}):\n"]
    lines.extend(f"  {number}. {message}\n" for number, message in enumerate(messages, start=1))
    return "".join(lines)


def _fmt_number(value: float) -> str:
    """Render a number the way the log messages expect: no trailing '.0', no exponent."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))), "f")


def validate_strategy(strategy: Strategy) -> ValidationResult:
    """Check a strategy and return every problem found."""
    result = ValidationResult()
    _validate_basic_fields(strategy, result)
    _validate_indicators(strategy, result)
    _validate_rules(strategy, result)
    _validate_risk_management(strategy.risk_management, result)
    return result


def _is_uuid(text: str) -> bool:
    try:
        uuid.UUID(text)
    except ValueError:
        return False
    return True


def _validate_basic_fields(strategy: Strategy, result: ValidationResult) -> None:
    if not strategy.id:
        result.add_error("Strategy ID is empty")
    elif not _is_uuid(strategy.id):
        result.add_error("Strategy ID is not a valid UUID")

    if not strategy.name:
        result.add_error("Strategy name is empty")
    if not strategy.version:
        result.add_error("Strategy version is empty")
    if not strategy.assets:
        result.add_error("Strategy has no assets defined")
    if not strategy.timeframes:
        result.add_error("Strategy has no timeframes defined")
    if not strategy.indicators:
        result.add_warning("Strategy has no indicators defined")
    if not strategy.rules:
        result.add_warning("Strategy has no rules defined")


def _validate_indicators(strategy: Strategy, result: ValidationResult) -> None:
    seen: set[str] = set()
    for indicator in strategy.indicators:
        if not indicator.id:
            result.add_error("Indicator ID is empty")
            continue
        if indicator.id in seen:
            result.add_error(f"Duplicate indicator ID: {indicator.id}")
        seen.add(indicator.id)

        if not indicator.indicator_type:
            result.add_error(f"Indicator {indicator.id} has empty type")
        elif indicator.indicator_type not in _KNOWN_INDICATOR_TYPES:
            result.add_warning(
                f"Indicator {indicator.id} has unknown type: {indicator.indicator_type}"
            )

        if not indicator.indicator_name:
            result.add_error(f"Indicator {indicator.id} has empty name")

        _validate_indicator_parameters(indicator, result)


def _has_param(parameters: object, key: str) -> bool:
    return isinstance(parameters, Mapping) and key in parameters


def _validate_indicator_parameters(indicator: StrategyIndicator, result: ValidationResult) -> None:
    name = indicator.indicator_name
    params = indicator.parameters
    if name == "RSI":
        if not _has_param(params, "period"):
            result.add_warning(f"RSI indicator {indicator.id} missing 'period' parameter")
    elif name in _REQUIRED_GROUPS:
        required = _REQUIRED_GROUPS[name]
        if not all(_has_param(params, key) for key in required):
            result.add_warning(
                f"{name} indicator {indicator.id} missing required parameters "
                f"({', '.join(required)})"
            )
    elif name in _PERIOD_ONLY:
        if not _has_param(params, "period"):
            result.add_warning(f"{name} indicator {indicator.id} missing 'period' parameter")


def _validate_rules(strategy: Strategy, result: ValidationResult) -> None:
    seen: set[str] = set()
    indicator_ids = {indicator.id for indicator in strategy.indicators}
    for rule in strategy.rules:
        if not rule.id:
            result.add_error("Rule ID is empty")
            continue
        if rule.id in seen:
            result.add_error(f"Duplicate rule ID: {rule.id}")
        seen.add(rule.id)

        if not rule.name:
            result.add_error(f"Rule {rule.id} has empty name")

        _validate_condition(rule.condition, indicator_ids, result)


def _validate_condition(
    condition: CompositeCondition, indicator_ids: set[str], result: ValidationResult
) -> None:
    if isinstance(condition, SimpleCondition):
        _validate_simple_condition(condition.condition, indicator_ids, result)
    elif isinstance(condition, CompoundCondition):
        for child in condition.conditions:
            _validate_condition(child, indicator_ids, result)


def _validate_simple_condition(
    condition: Condition, indicator_ids: set[str], result: ValidationResult
) -> None:
    _validate_value_source(condition.left, indicator_ids, result)
    _validate_value_source(condition.right, indicator_ids, result)


def _validate_value_source(
    source: ValueSource, indicator_ids: set[str], result: ValidationResult
) -> None:
    if isinstance(source, IndicatorSource):
        if source.indicator_id not in indicator_ids:
            result.add_error(f"Rule references unknown indicator: {source.indicator_id}")
    elif isinstance(source, PriceSource):
        if source.property not in _PRICE_PROPERTIES:
            result.add_warning(f"Unknown price property: {source.property}")


def _check_percent(value: float, name: str, result: ValidationResult) -> None:
    if value <= 0.0 or value > 100.0:
        result.add_warning(
            f"Invalid {name}: {_fmt_number(value)}%. Should be between 0 and 100"
        )


def _validate_risk_management(risk: RiskManagement, result: ValidationResult) -> None:
    _check_percent(risk.max_risk_per_trade, "max_risk_per_trade", result)
    _check_percent(risk.max_total_risk, "max_total_risk", result)
    _check_percent(risk.default_position_size, "default_position_size", result)
    if risk.default_stop_loss is not None:
        _check_percent(risk.default_stop_loss, "default_stop_loss", result)
    if risk.default_take_profit is not None:
        _check_percent(risk.default_take_profit, "default_take_profit", result)

    if risk.use_trailing_stop:
        if risk.trailing_stop_activation is None:
            result.add_warning("Trailing stop is enabled but activation percentage is not set")
        if risk.trailing_stop_percent is None:
            result.add_warning("Trailing stop is enabled but trailing percentage is not set")