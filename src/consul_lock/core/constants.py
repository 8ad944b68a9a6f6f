"""Constants and default values for consul-lock.

This module centralizes exit codes, backend defaults and the signal set
shared by the lock coordinator and the process supervisor.
"""

import signal

# ==================== EXIT CODES ====================

EXIT_CODE_ERROR: int = 111  # Backend failure, start failure or undecodable status
EXIT_CODE_USAGE: int = 2  # argparse usage errors
EXIT_CODE_UNKNOWN_SIGNAL: int = -1  # Signal that cannot be classified
EXIT_CODE_NO_STATUS: int = -1  # Child terminated without an exit status

# ==================== BACKEND DEFAULTS ====================

DEFAULT_CONSUL_ADDR: str = "http://localhost:8500"
DEFAULT_LOCK_PREFIX: str = "locks"
DEFAULT_LOCK_DELAY: int = 15  # Seconds, enforced by the backend only
DEFAULT_WAIT: str = "10s"  # Long-poll wait per blocking read
HTTP_TIMEOUT_MARGIN_SECONDS: float = 5.0  # Added on top of the long-poll wait
SESSION_NAME_PREFIX: str = "lock-for-"

# Sentinel for "no index observed yet"; never sent as a query value
NO_INDEX = None
NO_INDEX_RETRY_SECONDS: float = 1.0  # Pause between plain reads when the backend sends no index

CONSUL_INDEX_HEADER: str = "X-Consul-Index"
CONSUL_TOKEN_HEADER: str = "X-Consul-Token"

# ==================== ENVIRONMENT ====================

ENV_CONSUL_ADDR: str = "CONSUL_HTTP_ADDR"
ENV_CONSUL_TOKEN: str = "CONSUL_HTTP_TOKEN"
ENV_LOCK_PREFIX: str = "CONSUL_LOCK_PREFIX"
ENV_LOCK_WAIT: str = "CONSUL_LOCK_WAIT"
ENV_SESSION_MODE: str = "CONSUL_LOCK_SESSION_MODE"
ENV_DEBUG: str = "DEBUG"
ENV_LOG_LEVEL: str = "LOG_LEVEL"

DEFAULT_LOG_LEVEL: str = "WARNING"

# ==================== PROCESS SUPERVISION ====================

TRAP_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGHUP,
    signal.SIGINT,
    signal.SIGTERM,
    signal.SIGQUIT,
)

RELAY_CHUNK_SIZE: int = 64 * 1024
RELAY_JOIN_TIMEOUT_SECONDS: float = 5.0  # Output relays after child exit
