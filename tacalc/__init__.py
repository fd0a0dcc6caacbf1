"""Trading strategy schema, validation, database row conversion and file logging."""

__version__ = "0.1.0"