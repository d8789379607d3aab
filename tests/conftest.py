import sys
import pathlib
import warnings
import logging as _logging

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except Exception:
    pass

# Reduce SQLAlchemy logger verbosity during tests
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool', 'sqlmodel'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

from scheduler.main import create_app
from scheduler.store import TaskStore


@pytest_asyncio.fixture
async def store(tmp_path):
    """A TaskStore backed by a fresh SQLite file for each test."""
    s = TaskStore(f"sqlite+aiosqlite:///{tmp_path / 'scheduler.db'}")
    await s.init()
    try:
        yield s
    finally:
        await s.close()


@pytest_asyncio.fixture
async def client(store, tmp_path):
    # ASGITransport does not run the lifespan, so hand the app a ready store
    app = create_app(store=store, web_dir=str(tmp_path / 'no-web'))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fixed_today(monkeypatch):
    """Pin the server's notion of "today" for API tests.

    Usage:

        async def test_x(client, fixed_today):
            fixed_today('20240126')
            ...
    """
    from datetime import datetime
    import scheduler.api as api
    import scheduler.store as store_mod

    def _set(value: str):
        d = datetime.strptime(value, '%Y%m%d').date()
        monkeypatch.setattr(api, 'today', lambda: d)
        monkeypatch.setattr(store_mod, 'today', lambda: d)
        return d

    return _set
