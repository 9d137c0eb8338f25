from .events import Event, EventSource, MessageStyle
from .message_composer import MessageComposer
from .join_codes import JoinCodeRegistry

__all__ = ["Event", "EventSource", "MessageStyle", "MessageComposer", "JoinCodeRegistry"]
