"""
Protocol Constants

Values shared between the gateway, the hook launchers and the paired
operator client. TOTP parameters must match the client exactly.
"""

# ========== Ports ==========
DEFAULT_HOOK_HTTP_PORT = 7890
DEFAULT_WS_PORT = 7891
DEFAULT_BIND_HOST = "127.0.0.1"

# ========== Approvals ==========
APPROVAL_TIMEOUT_SECONDS = 5 * 60.0

# Hook process exit codes (consumed by the agent hook runner)
HOOK_EXIT_ALLOWED = 0
HOOK_EXIT_BLOCKED = 2

REASON_TIMED_OUT = "Approval timed out"
REASON_DENIED = "Denied by user"
REASON_SESSION_TERMINATED = "Session terminated"
REASON_HOOK_CONNECTION_LOST = "Hook connection lost"
REASON_TOO_MANY_PENDING = "Too many pending approvals"
REASON_DUPLICATE_REQUEST = "Duplicate approval request"

# Tools that never modify anything; always classified safe
READ_ONLY_TOOLS: frozenset[str] = frozenset(
    {
        "Read",
        "Glob",
        "Grep",
        "WebSearch",
        "WebFetch",
        "Task",
        "TaskList",
        "TaskGet",
        "AskUserQuestion",
    }
)

# Write/Edit previews
MAX_DIFF_BYTES = 256 * 1024
DIFF_CONTEXT_LINES = 3
BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".bmp",
        ".mp3", ".mp4", ".wav", ".avi", ".mov",
        ".zip", ".tar", ".gz", ".bz2", ".7z",
        ".exe", ".dll", ".so", ".dylib",
        ".wasm", ".pdf", ".docx", ".xlsx",
    }
)  # fmt: skip

# ========== Pairing (TOTP) ==========
TOTP_PERIOD_SECONDS = 30
TOTP_DIGITS = 6
TOTP_VALID_WINDOW = 1  # ±1 step of clock skew
TOTP_MAX_ATTEMPTS = 3
TOTP_WINDOW_SECONDS = 60.0

# ========== Terminal streaming ==========
FRAME_INTERVAL_SECONDS = 0.016  # ~60fps
SCROLLBACK_LINES = 10_000

# ========== Resource limits ==========
MAX_CLIENTS = 5
MAX_PENDING_PER_SESSION = 100
MAX_TOKENS_PER_SOURCE = 5
MAX_HOOK_PAYLOAD_BYTES = 1024 * 1024
MAX_WS_MESSAGE_BYTES = 64 * 1024

# ========== Relay ==========
DEFAULT_RELAY_URL = "wss://relay.agentpager.dev"

# ========== Transport ==========
HOOK_DISCONNECT_POLL_SECONDS = 0.5
