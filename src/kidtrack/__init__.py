"""kidtrack: access control core for child-development tracking."""

__version__ = "0.1.0"
