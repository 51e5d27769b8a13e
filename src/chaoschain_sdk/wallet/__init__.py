"""Wallet management for agents."""

from .manager import WalletManager

__all__ = ["WalletManager"]
