"""Load-order manager for Baldur's Gate 3 mods."""

__version__ = "0.1.0"
