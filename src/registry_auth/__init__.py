"""Wallet-based challenge/response authentication backed by an on-chain key registry."""

__version__ = "0.1.0"
