"""Shared constants for the kanflow run engine."""

MAX_CONCURRENT_RUNS = 10
MAX_PROGRESS_FILE_SIZE = 10 * 1024 * 1024

RUN_ID_PATTERN = r"^run_\d{10,}_[a-zA-Z0-9_-]{6,}$"

RUN_FILENAME = "run.json"
SNAPSHOT_FILENAME = "workflow.yml"
PROGRESS_FILENAME = "progress.md"
STEP_OUTPUTS_DIRNAME = "step-outputs"

RETRY_CONTEXT_KEY = "_retryContext"
DEFAULT_REDIS_CHANNEL = "kanflow:runs"
BROADCAST_TIMEOUT = 5.0
