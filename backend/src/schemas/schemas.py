from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from utilities import utc_now


class ChannelMessage(BaseModel):
    ''' One message published on the channel. Immutable once created.'''

    model_config = ConfigDict(frozen=True)

    content: str
    author: str
    # assigned at creation when the publisher leaves it out
    time: datetime = Field(default_factory=utc_now)
