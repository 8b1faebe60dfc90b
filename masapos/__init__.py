"""masa-pos: table, order, stock and payment backend for restaurants."""

__version__ = "0.1.0"
