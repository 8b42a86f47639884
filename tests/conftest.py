from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.models import Base, Family, User
from app.services.assignment_store import AssignmentStore
from app.services.stage_registry import StageRegistry


@dataclass
class Household:
    id: int
    admin_id: int
    member_id: int
    viewer_id: int

    def stage_ids(self, session) -> dict[str, int]:
        return {stage.name: stage.id for stage in StageRegistry(db=session).list_stages(self.id)}


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'homeboard_test.db'}", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db_session_override(session_factory):
    @contextmanager
    def _get_db_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    return _get_db_session


def _create_household(session, name: str) -> Household:
    family = Family(name=name)
    session.add(family)
    session.flush()
    admin = User(family_id=family.id, first_name="Ana", last_name=name, role="admin")
    member = User(family_id=family.id, first_name="Ben", last_name=name, role="member")
    viewer = User(family_id=family.id, first_name="Cleo", last_name=name, role="viewer")
    session.add_all([admin, member, viewer])
    session.commit()
    StageRegistry(db=session).ensure_default_stages(family.id)
    return Household(id=family.id, admin_id=admin.id, member_id=member.id, viewer_id=viewer.id)


@pytest.fixture
def household(db) -> Household:
    return _create_household(db, "Rivera")


@pytest.fixture
def other_household(db, household) -> Household:
    return _create_household(db, "Okafor")


@pytest.fixture
def place_order(db):
    """Mirror a source order and put it on the board in the first stage."""

    def _place(family_id: int, order_id: int, status: str = "processing", **fields):
        store = AssignmentStore(db=db)
        fields.setdefault("order_number", f"#{order_id}")
        fields.setdefault("customer_name", f"Customer {order_id}")
        store.upsert_source_order(family_id, order_id, status=status, **fields)
        return store.register_order(family_id, order_id)

    return _place
