"""Orchestrator settings: file names, lock timings and retry defaults.

Most values can be overridden by a ``SYMPHONY_*`` variable, read from the
process environment or a ``.env`` file in the working directory when this
module is first imported.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# -- Files --------------------------------------------------------------------
STATE_FILE_NAME = os.getenv('SYMPHONY_STATE_FILE', '.symphony-state.json')
PLANS_DIR = os.getenv('SYMPHONY_PLANS_DIR',
                      os.path.expanduser('~/.claude/plans'))
PHASES_BLOCK_LABEL = 'symphony-phases'

# -- Locking ------------------------------------------------------------------
LOCK_TIMEOUT_SECONDS = float(os.getenv('SYMPHONY_LOCK_TIMEOUT', '30'))
LOCK_STALE_SECONDS = float(os.getenv('SYMPHONY_LOCK_STALE_AFTER', '60'))
LOCK_INITIAL_DELAY_SECONDS = 0.05
LOCK_MAX_DELAY_SECONDS = 2.0

# -- Retry policy defaults ----------------------------------------------------
DEFAULT_MAX_RETRIES = int(os.getenv('SYMPHONY_MAX_RETRIES', '3'))
DEFAULT_BACKOFF_STRATEGY = os.getenv('SYMPHONY_BACKOFF_STRATEGY',
                                     'exponential-jitter')
DEFAULT_INITIAL_DELAY_MS = int(os.getenv('SYMPHONY_INITIAL_DELAY_MS', '1000'))
DEFAULT_MAX_DELAY_MS = int(os.getenv('SYMPHONY_MAX_DELAY_MS', '30000'))

# -- Notifications ------------------------------------------------------------
DECISION_WEBHOOK_URL = os.getenv('SYMPHONY_DECISION_WEBHOOK_URL')
WEBHOOK_TIMEOUT_SECONDS = 30
