# chanrelay protocol constants (envelope keys, event names, policy defaults)

RELAY_VERSION = 1

# Envelope keys
K_V = 0
K_T = 1
K_ID = 2
K_TS = 3
K_BODY = 4

# Inbound events
EV_JOIN = "join"
EV_LEAVE = "leave"
EV_SEND_MESSAGE = "send-message"
EV_TYPING = "typing"
EV_GET_USERS = "get-users"

# Outbound events
EV_ERROR = "error"
EV_JOINED_CHANNEL = "joined-channel"
EV_LEFT_CHANNEL = "left-channel"
EV_MESSAGE_HISTORY = "message-history"
EV_CHANNEL_INFO = "channel-info"
EV_USER_JOINED = "user-joined"
EV_USER_LEFT = "user-left"
EV_USER_TYPING = "user-typing"
EV_NEW_MESSAGE = "new-message"
EV_USERS_LIST = "users-list"

# Display names are measured in Unicode characters, before angle brackets
# are stripped.
DISPLAY_NAME_MIN_CHARS = 2
DISPLAY_NAME_MAX_CHARS = 20

CHANNEL_NAME_MAX_CHARS = 64

MESSAGE_MAX_CHARS = 500
REPLY_BODY_MAX_CHARS = 100

MAX_EMBEDDED_TOKENS = 10

HISTORY_CAPACITY = 100

# Seconds.
CHANNEL_GRACE_S = 60.0
TYPING_STALE_S = 5.0
TYPING_SWEEP_STALE_S = 10.0
TYPING_SWEEP_INTERVAL_S = 5.0

# Validation failure reasons
R_TOO_SHORT = "TooShort"
R_TOO_LONG = "TooLong"
R_EMPTY = "Empty"
R_DENYLISTED = "Denylisted"
R_TOO_MANY_TOKENS = "TooManyTokens"
R_INVALID = "Invalid"
