import logging

from core.config import LOG_FORMAT, LOG_LEVEL

# Configure logging once for the whole process
logging.basicConfig(level=getattr(logging, LOG_LEVEL), format=LOG_FORMAT)

# Disable httpx logging
logging.getLogger("httpx").setLevel(logging.WARNING)
