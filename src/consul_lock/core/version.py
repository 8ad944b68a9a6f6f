"""Version information for consul-lock."""

__version__ = "1.0.0"
