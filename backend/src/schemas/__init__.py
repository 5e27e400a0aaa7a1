from .schemas import ChannelMessage
