"""Fixtures for soft deletion tests."""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from soft_deletion import SoftDeletion, SoftDeletionConfig, set_config

from forum_models import (
    Attachment,
    Banner,
    Base,
    Category,
    Forum,
    Moderator,
    Post,
    Subscription,
)


@pytest.fixture(autouse=True)
def reset_config():
    """Keep the global configuration isolated between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def engine():
    """In-memory SQLite engine with working SAVEPOINTs."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def config():
    return SoftDeletionConfig()


@pytest.fixture
def soft_deletion(config):
    """Service with every test model registered."""
    service = SoftDeletion(config=config)
    service.register_all(Base)
    return service


@pytest.fixture
def session_factory(engine, soft_deletion):
    factory = sessionmaker(bind=engine)
    soft_deletion.install(factory)
    return factory


@pytest.fixture
def session(session_factory):
    """Session with default scoping installed."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def forum_tree(session):
    """A category with two forums, posts, a banner and side records."""
    category = Category(name="General")
    intro = Forum(name="Introductions", category=category)
    offtopic = Forum(name="Off-topic", category=category)
    session.add_all(
        [
            category,
            intro,
            offtopic,
            Post(title="Hello", forum=intro),
            Post(title="Hi all", forum=intro),
            Post(title="Weather", forum=offtopic),
            Banner(text="Welcome", category=category),
            Moderator(username="mod", category=category),
            Attachment(filename="rules.pdf", forum=intro),
            Subscription(email="a@example.com", forum=intro),
        ]
    )
    session.commit()
    return category
