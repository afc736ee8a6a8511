"""
Constants used across the newr client package.
"""

NEWR_TRACER_NAME = "newr-tracer"
VERSION = "0.1.0"

LOG_TAG = "NEWR" # Used in all logging output to identify newr messages

# Ingest hosts per region
US_LOG_HOST = "https://log-api.newrelic.com"
EU_LOG_HOST = "https://log-api.eu.newrelic.com"
US_TRACE_HOST = "https://trace-api.newrelic.com"
EU_TRACE_HOST = "https://trace-api.eu.newrelic.com"

# Statuses that will never succeed by re-sending the same bytes
PERMANENT_REJECTION_STATUSES = frozenset({400, 401, 403, 404, 405, 409, 410, 411})
PAYLOAD_TOO_LARGE_STATUS = 413
RATE_LIMITED_STATUS = 429

# Transient failures: one immediate retry, then 1s, 2s, 4s, 8s, 16s
MAX_BACKOFF_RETRIES = 5
