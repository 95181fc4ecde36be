"""PulseWatch - monitor execution and incident lifecycle engine."""

__version__ = "1.0.0"
