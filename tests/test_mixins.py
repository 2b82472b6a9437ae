"""
Tests for SoftDeletionMixin and the hard delete guard.
"""

import pytest
from sqlalchemy import Column, Integer, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base

from soft_deletion import SoftDeletionMixin, register_hard_delete_guard

from forum_models import Forum

GuardBase = declarative_base()


class Invoice(GuardBase, SoftDeletionMixin):
    """Model protected from physical deletes."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    number = Column(String(20))


@pytest.fixture
def deleted_forum(session, soft_deletion, forum_tree):
    forum = session.scalars(select(Forum).where(Forum.name == "Off-topic")).one()
    soft_deletion.soft_delete(session, forum)
    return forum


class TestSoftDeletionMixin:
    """Test the columns and helpers added by the mixin."""

    def test_marker_column(self):
        column = Forum.__table__.c.deleted_at

        assert column.nullable is True
        assert column.index is True

    def test_is_deleted(self, session, deleted_forum):
        assert deleted_forum.is_deleted is True
        assert Forum(name="new").is_deleted is False

    def test_active_select(self, engine, deleted_forum):
        with Session(engine) as plain:
            names = [forum.name for forum in plain.scalars(Forum.active_select())]
        assert names == ["Introductions"]

    def test_deleted_select(self, session, deleted_forum):
        names = [forum.name for forum in session.scalars(Forum.deleted_select())]
        assert names == ["Off-topic"]

    def test_all_select(self, session, deleted_forum):
        assert len(session.scalars(Forum.all_select()).all()) == 2

    def test_to_dict(self, session, deleted_forum):
        data = deleted_forum.to_dict()

        assert data["name"] == "Off-topic"
        assert isinstance(data["deleted_at"], str)

        assert "deleted_at" not in deleted_forum.to_dict(include_deleted_fields=False)


class TestHardDeleteGuard:
    """Test forbidding physical deletes."""

    @pytest.fixture
    def guarded_session(self):
        engine = create_engine("sqlite://")
        GuardBase.metadata.create_all(engine)
        register_hard_delete_guard(GuardBase)
        register_hard_delete_guard(GuardBase)

        with Session(engine) as session:
            session.add(Invoice(number="INV-1"))
            session.commit()
            yield session
        engine.dispose()

    def test_physical_delete_blocked(self, guarded_session):
        invoice = guarded_session.scalars(select(Invoice)).one()
        guarded_session.delete(invoice)

        with pytest.raises(RuntimeError, match="Hard delete attempted on Invoice"):
            guarded_session.flush()
