# tacalc

Building blocks for describing, checking and storing rule-based trading
strategies. The package has no dependencies outside the standard library.

## Modules

- `tacalc.schema` holds the strategy model:
  - `Strategy`, `StrategyIndicator`, `StrategyRule`, `RiskManagement` and
    `StrategyPerformance`.
  - The condition tree: `SimpleCondition`, `CompoundCondition` and
    `Condition`, with `ComparisonOperator` and `LogicalOperator`.
  - The value sources: `IndicatorSource`, `PriceSource`, `ParameterSource`
    and `ConstantSource`.
  - `RuleAction` with its `ActionKind`.
  - The tunable parameters: `IntegerParameter`, `FloatParameter`,
    `BooleanParameter` and `StringParameter`.

  Every class has `to_dict()`. Most classes also have a `from_dict()`
  classmethod. For the tagged unions, use `parse_value_source`,
  `parse_condition` and `parse_parameter`. A `Strategy` turns into
  pretty-printed JSON with `to_json()` and is read back with
  `Strategy.from_json()`. Timestamps are written in UTC with a `Z` suffix.
  Malformed input raises `ValueError`.
- `tacalc.validator` provides `validate_strategy(strategy)`, which returns a
  `ValidationResult` with `errors` and `warnings` lists. It checks:
  - the basic fields;
  - indicator IDs, types and required parameters for RSI, MACD, BBANDS,
    STOCH, SMA, EMA, WMA, TEMA, ATR and NATR;
  - rule IDs and names;
  - references to unknown indicators and price properties;
  - risk percentages.

  `summary()` returns a numbered report. `raise_for_errors()` raises
  `StrategyValidationError`, which is a `ValueError`, when the result holds
  any errors.
- `tacalc.rows` converts between objects and database row mappings.
  `strategy_from_row` builds a strategy without its indicators and rules.
  `indicator_from_row` and `rule_from_row` build the other two. In the other
  direction, `indicator_to_row(strategy_id, indicator)` and
  `rule_to_row(strategy_id, rule)` produce rows. The strategy ID must be a
  valid UUID.
- `tacalc.filelog` provides the coroutine `log_to_file(message, log_dir="logs")`.
  It appends `[YYYY-MM-DD HH:MM:SS.mmm] message` to
  `indicator_calculations.log` in that directory, creating the directory if
  needed. It returns the path of the log file.

## Example

```python
from tacalc.schema import Strategy
from tacalc.validator import validate_strategy

strategy = Strategy(name="RSI bounce", assets=["BTCUSDT"], timeframes=["1h"])
result = validate_strategy(strategy)
print(result.summary())

restored = Strategy.from_json(strategy.to_json())
assert restored.name == "RSI bounce"
```

## What it does not do

The package has no command-line tool. It does not do any of the following:

- connect to a database: the row helpers only build and read mappings, and
  the caller runs the queries;
- compute indicator values;
- run backtests or simulate trades.

## Installing

```
pip install .
```

To run the tests, install the `test` extra and then run `pytest`.