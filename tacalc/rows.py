"""Conversion between strategy objects and database rows.

A row is any mapping from column name to value.  JSON columns hold decoded
JSON values (lists, dictionaries, numbers and so on).
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from tacalc.schema import (
    RiskManagement,
    RuleAction,
    Strategy,
    StrategyIndicator,
    StrategyRule,
    parse_condition,
    parse_parameter,
)


def _column(row: Mapping[str, Any], name: str) -> Any:
    try:
        return row[name]
    except KeyError:
        raise ValueError(f"row has no column '{name}'") from None


def _text(row: Mapping[str, Any], name: str) -> str:
    value = _column(row, name)
    if not isinstance(value, str):
        raise ValueError(f"column '{name}' must be text, got {value!r}")
    return value


def _integer(row: Mapping[str, Any], name: str) -> int:
    value = _column(row, name)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"column '{name}' must be an integer, got {value!r}")
    return value


def _boolean(row: Mapping[str, Any], name: str) -> bool:
    value = _column(row, name)
    if not isinstance(value, bool):
        raise ValueError(f"column '{name}' must be a boolean, got {value!r}")
    return value


def _timestamp(row: Mapping[str, Any], name: str) -> datetime:
    value = _column(row, name)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(re.sub(r"[zZ]$", "+00:00", value.strip()))
        except ValueError:
            raise ValueError(f"column '{name}' is not a timestamp: {value!r}") from None
    if not isinstance(value, datetime):
        raise ValueError(f"column '{name}' must be a timestamp, got {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _string_list(row: Mapping[str, Any], name: str) -> list[str]:
    value = _column(row, name)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"column '{name}' must be a list of strings, got {value!r}")
    return list(value)


def _normalise_uuid(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"strategy id must be a UUID string, got {value!r}")
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValueError(f"Invalid UUID format for strategy ID: {value!r}") from None


def strategy_from_row(row: Mapping[str, Any]) -> Strategy:
    """Build a strategy from a ``strategies`` row, without indicators or rules."""
    parameters = _column(row, "parameters")
    if not isinstance(parameters, Mapping):
        raise ValueError(f"column 'parameters' must be an object, got {parameters!r}")
    metadata = row.get("metadata")
    if metadata is not None and not isinstance(metadata, Mapping):
        raise ValueError(f"column 'metadata' must be an object, got {metadata!r}")

    return Strategy(
        id=_normalise_uuid(_column(row, "id")),
        name=_text(row, "name"),
        description=_text(row, "description"),
        version=_text(row, "version"),
        author=_text(row, "author"),
        created_at=_timestamp(row, "created_at"),
        updated_at=_timestamp(row, "updated_at"),
        enabled=_boolean(row, "enabled"),
        assets=_string_list(row, "assets"),
        timeframes=_string_list(row, "timeframes"),
        indicators=[],
        rules=[],
        parameters={str(key): parse_parameter(value) for key, value in parameters.items()},
        risk_management=RiskManagement.from_dict(_column(row, "risk_management")),
        performance=None,
        metadata=dict(metadata) if metadata is not None else {},
    )


def indicator_from_row(row: Mapping[str, Any]) -> StrategyIndicator:
    """Build an indicator from a ``strategy_indicators`` row."""
    return StrategyIndicator(
        id=_text(row, "indicator_id"),
        indicator_type=_text(row, "indicator_type"),
        indicator_name=_text(row, "indicator_name"),
        parameters=_column(row, "parameters"),
        description=_text(row, "description"),
    )


def rule_from_row(row: Mapping[str, Any]) -> StrategyRule:
    """Build a rule from a ``strategy_rules`` row."""
    return StrategyRule(
        id=_text(row, "rule_id"),
        name=_text(row, "name"),
        condition=parse_condition(_column(row, "condition")),
        action=RuleAction.from_dict(_column(row, "action")),
        priority=_integer(row, "priority"),
        description=_text(row, "description"),
    )


def indicator_to_row(strategy_id: str, indicator: StrategyIndicator) -> dict[str, Any]:
    """The ``strategy_indicators`` row storing ``indicator`` for a strategy."""
    return {
        "strategy_id": _normalise_uuid(strategy_id),
        "indicator_id": indicator.id,
        "indicator_type": indicator.indicator_type,
        "indicator_name": indicator.indicator_name,
        "parameters": indicator.parameters,
        "description": indicator.description,
        "created_at": datetime.now(timezone.utc),
    }


def rule_to_row(strategy_id: str, rule: StrategyRule) -> dict[str, Any]:
    """The ``strategy_rules`` row storing ``rule`` for a strategy."""
    return {
        "strategy_id": _normalise_uuid(strategy_id),
        "rule_id": rule.id,
        "name": rule.name,
        "condition": rule.condition.to_dict(),
        "action": rule.action.to_dict(),
        "priority": rule.priority,
        "description": rule.description,
        "created_at": datetime.now(timezone.utc),
    }