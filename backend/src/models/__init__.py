from .models import ChannelBroker, Subscriber
from .session import EventTransport, SessionEnd, StreamingNotSupportedError, StreamingSession
