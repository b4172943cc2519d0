"""Simply Done - parallel story runner for autonomous coding agents."""

__version__ = "0.4.0"
