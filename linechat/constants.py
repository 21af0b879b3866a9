# linechat protocol constants (wire strings and defaults)

DEFAULT_PORT = 65534
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_CLIENT_HOST = "127.0.0.1"

MAX_CLIENTS = 4
NICK_MAX_CHARS = 32

# Longest accepted incoming line, in bytes, and how long a new connection
# may take to send its name.
MAX_LINE_BYTES = 4096
HANDSHAKE_TIMEOUT_S = 30.0

# Client reconnection policy
RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_S = 5.0

# Sent by a client to end its session; typed on the server console to shut down.
QUIT_SENTINEL = "\\q"

# Commands
CMD_PM = "/pm"
CMD_USERS = "/users"
CMD_HELP = "/help"
CMD_STATS = "/stats"

# Server -> client lines
SYSTEM_PREFIX = "[CHAT]:"
SELF_ECHO_PREFIX = "Me: "
SERVER_FULL = "Server is full. Please try again later."
SERVER_SHUTDOWN = "Server is shutting down. Please disconnect."
NAME_IN_USE = "Name '{name}' is already in use."
PM_FORMAT_ERROR = "Invalid private message format. (Use '/pm username message')"

HELP_TEXT = "\n".join(
    [
        "Available Commands:",
        "/users - List all connected users",
        "/pm username message - Send a private message to a specific user",
        "/help - Display this help message",
        f"{QUIT_SENTINEL} - Quit the chat",
    ]
)
