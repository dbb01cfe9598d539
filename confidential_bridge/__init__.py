"""Confidential balance bridge: wrap ERC20 balances into encrypted ERC7984 balances and back."""

__version__ = "0.1.0"
