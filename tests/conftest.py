"""
Shared fixtures.

Every test gets its own file-backed SQLite database, so that two sessions
really are two connections, as with PostgreSQL in production.
"""

from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from approval_ledger.domain import VoterReference
from approval_ledger.models import Base, Group, GroupMembership, Space
from approval_ledger.services import (
    CreateWorkflowInput,
    EngineConfig,
    WorkflowService,
    WorkflowTemplateService,
)
from helpers import FakeClock, user


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
async def engine(database_url):
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# ENTITIES
# =============================================================================


@pytest.fixture
def initiator() -> VoterReference:
    return user()


@pytest.fixture
async def space_id(session: AsyncSession) -> UUID:
    space = Space(id=uuid4(), name=f"space-{uuid4().hex[:8]}")
    session.add(space)
    await session.flush()
    return space.id


@pytest.fixture
def make_group(session: AsyncSession):
    """Create a group with the given members and return its id."""

    async def _make_group(*members: VoterReference) -> UUID:
        group = Group(id=uuid4(), name=f"group-{uuid4().hex[:8]}")
        session.add(group)
        await session.flush()
        for member in members:
            session.add(GroupMembership(
                group_id=group.id,
                entity_id=member.entity_id,
                entity_type=member.entity_type,
            ))
        await session.flush()
        return group.id

    return _make_group


@pytest.fixture
def make_template(session: AsyncSession, space_id: UUID, config: EngineConfig, clock: FakeClock):
    """Create an active template from a raw approval rule."""

    async def _make_template(rule: dict, **kwargs):
        service = WorkflowTemplateService(session, config=config, clock=clock)
        return await service.create_template(
            space_id=space_id,
            name=kwargs.pop("name", f"template-{uuid4().hex[:8]}"),
            approval_rule=rule,
            **kwargs,
        )

    return _make_template


@pytest.fixture
def make_workflow(session: AsyncSession, config: EngineConfig, clock: FakeClock, initiator: VoterReference):
    """Open a pending workflow on a template."""

    async def _make_workflow(template, expires_in_hours: int | None = None, by: VoterReference | None = None):
        service = WorkflowService(session, config=config, clock=clock)
        return await service.create_workflow(
            CreateWorkflowInput(
                template_id=template.id,
                name=f"workflow-{uuid4().hex[:8]}",
                expires_in_hours=expires_in_hours,
            ),
            initiator=by or initiator,
        )

    return _make_workflow
