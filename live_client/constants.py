# =============================================================================
# Live Client -- Protocol Constants
# =============================================================================
#
# Values match the gateway's /live handler and the web client it replaces.
# =============================================================================

# -- Endpoint ------------------------------------------------------------------

LIVE_PATH = "/live"
AUTH_COOKIE_NAME = "jwt"

# -- Timing (seconds) --------------------------------------------------------

CONNECTION_TIMEOUT = 10.0
PING_INTERVAL = 20.0
PING_TIMEOUT = 20.0

# -- Reconnection -------------------------------------------------------------

RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
RECONNECT_FACTOR = 2.0
RECONNECT_MAX_ATTEMPTS = -1  # -1 = infinite

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- Outbound command keywords -------------------------------------------------

CMD_SUBSCRIBE = "sub"
CMD_UNSUBSCRIBE = "unsub"
CMD_PRIVATE_CHAT = "private_chat"
CMD_GROUP_CHAT = "group_chat"
COMMAND_SEPARATOR = ":"

# -- Optimistic sends ----------------------------------------------------------

TEMP_ID_PREFIX = "temp-"

# -- Duplicate detection -------------------------------------------------------

SEEN_WINDOW_SIZE = 1_000
SEEN_MAX_AGE = 300.0  # 5 minutes

# -- Alerts --------------------------------------------------------------------

ALERT_DURATION = 4.0
CUE_PRIVATE_MESSAGE = "message"
CUE_GROUP_MESSAGE = "group_message"
CUE_NOTIFICATION = "notification"

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_ABNORMAL = 1006

# Codes that end a session on purpose; anything else, 1001 included,
# triggers a reconnect.
INTENTIONAL_CLOSE_CODES = frozenset({WS_CLOSE_NORMAL})

# -- REST gateway --------------------------------------------------------------

API_TIMEOUT = 10.0
API_UNREAD_CONVERSATIONS = "/my/chat/get-unread-conversation-count"
API_NOTIFICATION_COUNT = "/notifications-count"
API_CONVERSATION_PREVIEW = "/my/chat/{conversation_id}/preview"
API_CONVERSATION_PREVIEWS = "/my/chat/previews"
API_MARK_READ = "/my/chat/read"

# Previews fetched per page while seeding unread counts
CONVERSATION_PAGE_SIZE = 20
