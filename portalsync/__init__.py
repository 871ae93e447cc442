"""Portal reconciliation and cache core for the business console."""

__version__ = "0.3.0"
