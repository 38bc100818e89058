"""honeyprobe: dynamic honeypot detection for ERC20-style token contracts."""

__version__ = "0.1.0"
