"""PreventSleep: keep the host awake on a schedule."""

__version__ = "0.1.0"
