# ------------ Config ------------
BROKER_NAME = "main"          # one broker instance == one channel
SUBSCRIBER_QUEUE_SIZE = 50    # bounded per-subscriber queue
OVERFLOW_DROP_OLDEST = "drop_oldest"
OVERFLOW_DISCONNECT = "disconnect"
OVERFLOW_POLICY = OVERFLOW_DROP_OLDEST
HTTP_HOST = "0.0.0.0"
HTTP_PORT = 8000
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# --------------------------------
