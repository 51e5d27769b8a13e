"""ERC-8004 registry access."""

from .agent import ChaosAgent
from .events import EventSubscription
from .feedback import FeedbackAuthorization, build_feedback_authorization

__all__ = [
    "ChaosAgent",
    "EventSubscription",
    "FeedbackAuthorization",
    "build_feedback_authorization",
]
