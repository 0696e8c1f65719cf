"""Protocol literals shared by the broker, the router and the wire codec."""

# Command envelope tag expected as the first element of every client command.
COMMAND_TAG = "server"

# Literal text frame used for both the liveness probe and its reply.
HEARTBEAT = "heartbeat"

# Default timings (milliseconds); overridable through ``Settings``.
AUTH_GRACE_MS = 2_000
HEARTBEAT_IDLE_MS = 60_000
SWEEP_INTERVAL_MS = 10_000

MAX_EVENTS = 20

NICKNAME_MAX_LENGTH = 12
DEFAULT_NICKNAME = "无名玩家"
DEFAULT_EVENT_AVATAR = "caocao"

# Key under which the durable attachment is stored on the connection state.
ATTACHMENT_KEY = "lobby_attachment"

# WebSocket close code used when the broker terminates a connection.
POLICY_VIOLATION = 1008

__all__ = [
    "COMMAND_TAG",
    "HEARTBEAT",
    "AUTH_GRACE_MS",
    "HEARTBEAT_IDLE_MS",
    "SWEEP_INTERVAL_MS",
    "MAX_EVENTS",
    "NICKNAME_MAX_LENGTH",
    "DEFAULT_NICKNAME",
    "DEFAULT_EVENT_AVATAR",
    "ATTACHMENT_KEY",
    "POLICY_VIOLATION",
]
