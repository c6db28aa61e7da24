"""MySQL slow query log fingerprinting and aggregation."""

__version__ = "0.3.0"
