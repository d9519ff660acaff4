"""Vault Bets tip automation: scheduled generation, scoring and publishing of betting tips."""

__version__ = "0.1.0"
