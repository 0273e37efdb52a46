"""Color Clash round lifecycle and payout engine."""

__version__ = "0.1.0"
