"""Simple runtime configuration for the scheduler service.

Values are read from environment variables so the server can be pointed at a
different port, database file or web directory without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


# HTTP listener. 7540 is the port the bundled web client expects by default.
HOST = os.getenv('SCHEDULER_HOST', '0.0.0.0')
try:
    PORT = int(os.getenv('SCHEDULER_PORT', '7540'))
except Exception:
    PORT = 7540

# SQLite database file used when a full DATABASE_URL is not provided.
DB_FILE = os.getenv('SCHEDULER_DBFILE', 'scheduler.db')
DATABASE_URL = os.getenv('DATABASE_URL', f'sqlite+aiosqlite:///./{DB_FILE}')

# Directory with the static web client (index.html, js, css). Served at '/'
# when it exists; the API keeps working without it.
WEB_DIR = os.getenv('SCHEDULER_WEB_DIR', 'web')

# Maximum number of tasks returned by GET /api/tasks.
try:
    TASK_LIST_LIMIT = int(os.getenv('TASK_LIST_LIMIT', '50'))
except Exception:
    TASK_LIST_LIMIT = 50

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Echo SQL statements emitted by SQLAlchemy (noisy; development only).
SQL_ECHO = _trueish(os.getenv('SQL_ECHO', '0'))

# Optional local overrides: define variables in scheduler/local_config.py to
# override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    pass
