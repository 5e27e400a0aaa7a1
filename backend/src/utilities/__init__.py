from .constants import (
    BROKER_NAME,
    HTTP_HOST,
    HTTP_PORT,
    LOG_LEVEL,
    OVERFLOW_DISCONNECT,
    OVERFLOW_DROP_OLDEST,
    OVERFLOW_POLICY,
    SUBSCRIBER_QUEUE_SIZE,
)
from .config import Settings, get_settings
from .utility_functions import configure_logging, encode_event, utc_now
