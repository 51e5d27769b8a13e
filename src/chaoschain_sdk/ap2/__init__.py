"""Google AP2 mandates."""

from .google import GoogleAP2Integration

__all__ = ["GoogleAP2Integration"]
