"""
Tests for after-soft-delete hooks.
"""

import logging
from unittest.mock import Mock

import pytest
from sqlalchemy import select

from soft_deletion import (
    HookFailed,
    HookRegistry,
    SoftDeletion,
    SoftDeletionConfig,
    UnconfiguredType,
    ValidationFailed,
)

from forum_models import Base, Category, Forum, Post


def _forum(session, name):
    stmt = select(Forum).where(Forum.name == name)
    return session.scalars(stmt.execution_options(include_deleted=True)).one()


@pytest.fixture
def calls():
    return []


class TestHookRegistration:
    """Test registering hooks."""

    def test_hooks_kept_in_order(self, soft_deletion):
        def first(record):
            pass

        def second(record):
            pass

        soft_deletion.after_soft_delete(Category, first)
        soft_deletion.after_soft_delete(Category, second, "archived")

        assert soft_deletion.hooks_for(Category) == (first, second, "archived")
        assert soft_deletion.hooks_for(Forum) == ()

    def test_decorator(self, soft_deletion):
        @soft_deletion.hooks.on(Forum)
        def reindex(forum):
            pass

        assert soft_deletion.hooks_for(Forum) == (reindex,)

    def test_invalid_hooks_rejected(self, soft_deletion):
        with pytest.raises(ValueError):
            soft_deletion.after_soft_delete(Category)
        with pytest.raises(TypeError):
            soft_deletion.after_soft_delete(Category, 42)

    def test_unregistered_model_rejected(self, config):
        with pytest.raises(UnconfiguredType):
            SoftDeletion(config=config).after_soft_delete(Category, print)

    def test_unbound_registry_accepts_any_model(self):
        hooks = HookRegistry(config=SoftDeletionConfig())
        hooks.register(Category, print)

        assert len(hooks) == 1

    def test_clear(self, soft_deletion):
        soft_deletion.after_soft_delete(Category, print)
        soft_deletion.after_soft_delete(Forum, print)

        soft_deletion.hooks.clear(Category)
        assert soft_deletion.hooks_for(Category) == ()
        assert len(soft_deletion.hooks) == 1

        soft_deletion.hooks.clear()
        assert len(soft_deletion.hooks) == 0


class TestHookFiring:
    """Test when and how often hooks fire."""

    def test_hook_receives_record(self, session, soft_deletion, forum_tree):
        hook = Mock()
        soft_deletion.after_soft_delete(Category, hook)

        soft_deletion.soft_delete(session, forum_tree)

        hook.assert_called_once_with(forum_tree)

    def test_fires_once_per_record(self, session, soft_deletion, forum_tree, calls):
        soft_deletion.after_soft_delete(Category, calls.append)
        soft_deletion.after_soft_delete(Post, lambda post: calls.append(post.title))

        soft_deletion.soft_delete(session, forum_tree)

        assert calls[0] is forum_tree
        assert sorted(calls[1:]) == ["Hello", "Hi all", "Weather"]

    def test_fires_after_commit(self, session, soft_deletion, forum_tree, calls):
        def check_committed(category):
            calls.append(session.in_transaction())

        soft_deletion.after_soft_delete(Category, check_committed)
        soft_deletion.soft_delete(session, forum_tree)

        assert calls == [False]

    def test_method_name_hook(self, session, soft_deletion, forum_tree):
        soft_deletion.after_soft_delete(Category, "archived")

        soft_deletion.soft_delete(session, forum_tree)

        assert forum_tree.archive_notified is True

    def test_not_fired_on_undelete(self, session, soft_deletion, forum_tree, calls):
        soft_deletion.soft_delete(session, forum_tree)
        soft_deletion.after_soft_delete(Category, calls.append)

        soft_deletion.soft_undelete(session, forum_tree, include_dependents=True)

        assert calls == []

    def test_not_fired_on_physical_delete(
        self, session, soft_deletion, forum_tree, calls
    ):
        soft_deletion.after_soft_delete(Post, calls.append)
        post = session.scalars(select(Post)).first()

        session.delete(post)
        session.commit()

        assert calls == []

    def test_not_fired_on_failed_cascade(
        self, session, soft_deletion, forum_tree, calls
    ):
        offtopic = _forum(session, "Off-topic")
        offtopic.name = "invalid"
        session.commit()
        soft_deletion.after_soft_delete(Category, calls.append)
        soft_deletion.after_soft_delete(Forum, calls.append)

        with pytest.raises(ValidationFailed):
            soft_deletion.soft_delete(session, forum_tree)

        assert calls == []

    def test_fires_on_redelete(self, session, soft_deletion, forum_tree, calls):
        forum = _forum(session, "Introductions")
        soft_deletion.after_soft_delete(Forum, calls.append)

        soft_deletion.soft_delete(session, forum)
        soft_deletion.soft_delete(session, forum)

        assert calls == [forum, forum]

    def test_deferred_until_outermost_commit(
        self, session, soft_deletion, forum_tree, calls
    ):
        soft_deletion.after_soft_delete(Forum, calls.append)
        intro = _forum(session, "Introductions")

        with soft_deletion.atomic(session):
            soft_deletion.soft_delete(session, intro)
            assert calls == []

        assert calls == [intro]

    def test_rolled_back_savepoint_discards_hooks(
        self, session, soft_deletion, forum_tree, calls
    ):
        offtopic = _forum(session, "Off-topic")
        offtopic.name = "invalid"
        session.commit()
        intro = _forum(session, "Introductions")
        soft_deletion.after_soft_delete(Forum, calls.append)

        with soft_deletion.atomic(session):
            soft_deletion.soft_delete(session, intro)
            with pytest.raises(ValidationFailed):
                soft_deletion.soft_delete(session, offtopic)

        assert calls == [intro]


class TestHookFailures:
    """Test hooks that raise."""

    @staticmethod
    def broken(record):
        raise RuntimeError("mail server down")

    def test_failure_logged_and_remaining_hooks_run(
        self, session, soft_deletion, forum_tree, calls, caplog
    ):
        caplog.set_level(logging.ERROR, logger="soft_deletion.hooks")
        soft_deletion.after_soft_delete(Category, self.broken, calls.append)

        soft_deletion.soft_delete(session, forum_tree)

        assert calls == [forum_tree]
        assert forum_tree.deleted_at is not None
        assert "After-soft-delete hook" in caplog.text
        assert "mail server down" in caplog.text

    def test_hook_failed_raised_when_configured(self, session, forum_tree):
        service = SoftDeletion(config=SoftDeletionConfig(raise_hook_errors=True))
        service.register_all(Base)
        service.after_soft_delete(Category, self.broken)

        with pytest.raises(HookFailed) as exc_info:
            service.soft_delete(session, forum_tree)

        [failure] = exc_info.value.failures
        assert failure.record is forum_tree
        assert failure.hook_name.endswith("broken")
        assert isinstance(failure.error, RuntimeError)
        # The transition stays committed
        assert forum_tree.deleted_at is not None
