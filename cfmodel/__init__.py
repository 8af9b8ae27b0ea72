"""cf-model - Provider compensation scenario modeling."""

__version__ = "0.1.0"
