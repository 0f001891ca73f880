"""Shared default constants for claimloop."""

# Lock lease in milliseconds. A claim older than this is treated as abandoned
# and swept back to the pool at the start of the next claim cycle.
DEFAULT_LOCK_LEASE_MS: int = 15 * 60_000  # 15 minutes

# Candidate oversampling factor K: the claimer reads K*N candidate ids so that
# races lost to concurrent claimers still leave enough rows to fill a batch.
DEFAULT_OVERSAMPLE_FACTOR: int = 3

# Attempts per generative call within one claim cycle, and the linear backoff
# base (delay = base * attempt).
DEFAULT_MAX_CALL_ATTEMPTS: int = 3
DEFAULT_CALL_BACKOFF_BASE_MS: int = 400

DEFAULT_CLAIM_BATCH_SIZE: int = 100
DEFAULT_CHUNK_SIZE: int = 1
DEFAULT_CONCURRENCY: int = 8
DEFAULT_IDLE_SLEEP_MS: int = 500
DEFAULT_ERROR_SLEEP_MS: int = 1_000

DEFAULT_MODEL: str = 'gpt-5-mini'

DATABASE_URL_ENV: str = 'CLAIMLOOP_DATABASE_URL'
WORKER_ID_ENV: str = 'WORKER_ID'
