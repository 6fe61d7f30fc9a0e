"""
Pytest fixtures for archival pipeline tests.
"""

import os
from datetime import date, datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from archival.committer import Committer
from archival.crypto import AesGcmCipher
from archival.database import close_db, create_engine, create_session_maker, init_db
from archival.models import Defense, DefenseStatus, Enrollment, EnrollmentStatus
from archival.packager import Packager
from archival.selector import CandidateSelector

# Fixed reference points so cutoffs and bundle names are deterministic
TODAY = date(2026, 3, 15)
FIXED_NOW = datetime(2026, 3, 15, 10, 30, 45, tzinfo=timezone.utc)
OLD_DATE = date(2024, 1, 10)
RECENT_DATE = date(2026, 1, 5)

TEST_KEY = bytes(range(32))


@pytest.fixture
def uploads_root(tmp_path) -> str:
    path = tmp_path / "uploads"
    path.mkdir()
    return str(path)


@pytest.fixture
def archive_root(tmp_path) -> str:
    path = tmp_path / "archives"
    path.mkdir()
    return str(path)


@pytest.fixture
def cipher() -> AesGcmCipher:
    return AesGcmCipher(TEST_KEY)


@pytest.fixture
def packager(uploads_root, archive_root, cipher) -> Packager:
    return Packager(uploads_root, archive_root, cipher, clock=lambda: FIXED_NOW)


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-based SQLite so every session sees the same database."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'archival.db'}")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(db_engine)


@pytest.fixture
def selector(session_maker) -> CandidateSelector:
    return CandidateSelector(session_maker, batch_size=20)


@pytest.fixture
def committer(session_maker) -> Committer:
    return Committer(session_maker)


def write_document(root: str, *parts: str, size: int = 1024, fill: bytes = b"a") -> str:
    """Create a document of ``size`` bytes under ``root`` and return its absolute path."""
    path = os.path.abspath(os.path.join(root, *parts))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        fh.write((fill * size)[:size])
    return path


async def add_enrollment(
    session_maker: async_sessionmaker[AsyncSession],
    id: int,
    status: str = EnrollmentStatus.VALIDATED.value,
    validation_date: Optional[date] = OLD_DATE,
    rejection_date: Optional[date] = None,
    archived: bool = False,
    **fields,
) -> Enrollment:
    enrollment = Enrollment(
        id=id,
        doctorant_id=fields.pop("doctorant_id", 1000 + id),
        status=status,
        validation_date=validation_date,
        rejection_date=rejection_date,
        archived=archived,
        academic_year=fields.pop("academic_year", "2023-2024"),
        discipline=fields.pop("discipline", "Computer Science"),
        **fields,
    )
    async with session_maker() as session:
        session.add(enrollment)
        await session.commit()
    return enrollment


async def add_defense(
    session_maker: async_sessionmaker[AsyncSession],
    id: int,
    status: str = DefenseStatus.COMPLETED.value,
    defense_date: Optional[date] = OLD_DATE,
    pv_signed: bool = True,
    archived: bool = False,
    **fields,
) -> Defense:
    defense = Defense(
        id=id,
        enrollment_id=fields.pop("enrollment_id", 500 + id),
        status=status,
        defense_date=defense_date,
        pv_signed=pv_signed,
        archived=archived,
        location=fields.pop("location", "Amphi A"),
        **fields,
    )
    async with session_maker() as session:
        session.add(defense)
        await session.commit()
    return defense


async def load(session_maker: async_sessionmaker[AsyncSession], model, id: int):
    """Fresh copy of a row, read in its own session."""
    async with session_maker() as session:
        return await session.get(model, id)
