# messaging/services/__init__.py
from .broadcaster import RealtimeBroadcaster, broadcaster

__all__ = [
    "RealtimeBroadcaster",
    "broadcaster",
]
