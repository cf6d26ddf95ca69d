import asyncio
import os
import tempfile

# Settings are read once at import time; point them at throwaway infra first.
_BOOTSTRAP_DIR = tempfile.mkdtemp(prefix="checkin-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_BOOTSTRAP_DIR}/bootstrap.db")
os.environ["NATS_ENABLED"] = "false"
os.environ["RL_ENABLED"] = "false"
os.environ["STATS_SCHEDULER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import checkin_svc.db as db
import checkin_svc.main as main
from checkin_svc.models import Attendee, Base

CSV_HEADER = "Name,Phone,QR Payload,SeatID,Category"


async def _create_all(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture()
def session_maker(tmp_path, monkeypatch):
    # NullPool: TestClient and asyncio.run() each drive their own event loop.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'checkin_test.db'}", poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "async_session_maker", maker)
    asyncio.run(_create_all(engine))
    yield maker
    asyncio.run(engine.dispose())


@pytest.fixture()
def client(session_maker):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture()
def seed(session_maker):
    """Insert attendees directly: seed("QR1", "QR2", category="VIP")."""

    def _seed(*identifiers, **fields):
        async def run():
            async with session_maker() as s:
                for ident in identifiers:
                    s.add(Attendee(scan_identifier=ident, name=f"Guest {ident}", **fields))
                await s.commit()

        asyncio.run(run())

    return _seed


@pytest.fixture()
def upload(client):
    """POST a CSV body (header line added) to /import."""

    def _upload(*lines, header=CSV_HEADER, filename="attendees.csv"):
        body = "\n".join([header, *lines]) + "\n"
        return client.post("/import", files={"file": (filename, body.encode("utf-8"), "text/csv")})

    return _upload


@pytest.fixture()
def scan(client):
    """POST /scan with an explicit action."""

    def _scan(identifier, action, **extra):
        return client.post("/scan", json={"scan_identifier": identifier, "action": action, **extra})

    return _scan
