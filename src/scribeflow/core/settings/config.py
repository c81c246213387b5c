"""
Centralized application configuration.

Edit the variables below to configure development settings and engine tuning.
"""

import logging

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = "DEBUG"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_CONSOLE = True  # Set to True to output logs to terminal
# =============================================================================

# =============================================================================
# JOB ENGINE SETTINGS
# =============================================================================
CANCEL_GRACE_MS = 3000  # How long a backend may take to acknowledge cancel
PROGRESS_CAP_BEFORE_COMPLETE = 0.95
PROGRESS_WRITE_STEP = 0.01  # Minimum progress growth persisted to the ledger
DEFAULT_MAX_CONCURRENT_JOBS = 1
LEDGER_SCHEMA_VERSION = 1
# =============================================================================

# =============================================================================
# LIVE TRANSCRIPTION SETTINGS
# =============================================================================
LIVE_SAMPLE_RATE = 16000
LIVE_WINDOW_SECONDS = 12.0
LIVE_HOP_SECONDS = 3.0
LIVE_SAVE_DEBOUNCE_SECONDS = 1.5
# =============================================================================

# =============================================================================
# NETWORK SETTINGS
# =============================================================================
CONNECTIVITY_TIMEOUT_SECONDS = 2.0
CLOUD_NUM_RETRIES = 3
CLOUD_TIMEOUT_SECONDS = 120
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)
