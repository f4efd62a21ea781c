"""Shared defaults for provisor."""

DEFAULT_MAX_WORKERS = 1
DEFAULT_NETWORK_CONCURRENCY = 4
DEFAULT_BUILD_CONCURRENCY = 1

DEFAULT_RETRY_DELAY = 2.0
NETWORK_RETRY_ATTEMPTS = 3

STDERR_TAIL_LINES = 10

# Grace period between SIGTERM and SIGKILL for a cancelled process group.
PROCESS_KILL_GRACE = 5.0

DEFAULT_WORK_DIR = "/tmp"
DEFAULT_CONFIG_FILE = "provisor.yaml"
