"""Session diagnostic events and the in-process event bus."""

from recollect.events.bus import EventBus, Handler, SessionEventType
from recollect.events.log import EventRecorder

__all__ = ["EventBus", "EventRecorder", "Handler", "SessionEventType"]
