"""Multi-context user credential tokens."""

__version__ = "0.1.0"
