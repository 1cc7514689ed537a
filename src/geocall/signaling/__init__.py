"""Call signalling relay between two named participants."""

from .messages import MalformedMessageError
from .relay import SignalingRelay

__all__ = ["MalformedMessageError", "SignalingRelay"]
