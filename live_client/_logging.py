# =============================================================================
# Live Client -- Package Logger
# =============================================================================

import logging

logger = logging.getLogger("live_client")
logger.addHandler(logging.NullHandler())
