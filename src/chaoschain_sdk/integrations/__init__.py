"""Web framework integrations."""

from .paywall import PaidEndpoint, X402Server

__all__ = ["PaidEndpoint", "X402Server"]
