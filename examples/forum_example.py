#!/usr/bin/env python3
"""
Soft Deletion Example - Forums

IMPORTANT: This is a demonstration file prioritizing readability over
production readiness. It uses an in-memory database and prints its progress.

Demonstrates:
- Cascading soft deletes through declared relations
- Default scoping of queries
- Lifting the scope with ``with_deleted``
- Restoring a record together with its cascade
- After-soft-delete hooks and bulk deletes
"""

import logging

from sqlalchemy import Column, ForeignKey, Integer, String, create_engine, event, select
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from soft_deletion import SoftDeletion, SoftDeletionMixin

Base = declarative_base()


class Category(Base, SoftDeletionMixin):
    """Forum category; deleting it deletes its forums."""

    __tablename__ = "categories"
    __soft_deletion_relations__ = {"forums": "cascade"}

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)

    forums = relationship("Forum", back_populates="category")


class Forum(Base, SoftDeletionMixin):
    """Forum; deleting it deletes its posts."""

    __tablename__ = "forums"
    __soft_deletion_relations__ = {"posts": "cascade"}

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey("categories.id"))
    name = Column(String(100), nullable=False)

    category = relationship("Category", back_populates="forums")
    posts = relationship("Post", back_populates="forum")


class Post(Base, SoftDeletionMixin):
    """Forum post."""

    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    forum_id = Column(Integer, ForeignKey("forums.id"))
    title = Column(String(200), nullable=False)

    forum = relationship("Forum", back_populates="posts")


def main() -> None:
    """Walk through the soft deletion lifecycle."""
    logging.basicConfig(level=logging.INFO, format="  [%(name)s] %(message)s")
    print("🗑️  Soft Deletion Example\n")

    engine = create_engine("sqlite://")

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    soft_deletion = SoftDeletion()
    soft_deletion.register_all(Base)
    soft_deletion.install(Session)

    @soft_deletion.hooks.on(Category)
    def announce(category):
        print(f"  📣 Category '{category.name}' was archived")

    session = Session()

    # 1. Create test data
    print("1️⃣ Creating Test Data:")
    general = Category(name="General")
    general.forums = [
        Forum(name="Introductions", posts=[Post(title="Hello"), Post(title="Hi all")]),
        Forum(name="Off-topic", posts=[Post(title="Weather")]),
    ]
    session.add(general)
    session.commit()
    print(f"  ✓ {len(session.scalars(select(Post)).all())} posts created\n")

    # 2. Cascade soft delete
    print("2️⃣ Cascade Soft Delete:")
    soft_deletion.soft_delete(session, general)
    print(f"  Visible categories: {len(session.scalars(select(Category)).all())}")
    print(f"  Visible posts: {len(session.scalars(select(Post)).all())}\n")

    # 3. Query soft-deleted records
    print("3️⃣ Querying Soft-Deleted Records:")
    with soft_deletion.with_deleted(Category, Forum, Post):
        for post in session.scalars(select(Post)).all():
            print(f"    - {post.title}: deleted at {post.deleted_at}")

    # 4. Restore with dependents
    print("\n4️⃣ Restoring With Dependents:")
    soft_deletion.soft_undelete(session, general, include_dependents=True)
    print(f"  Visible posts: {len(session.scalars(select(Post)).all())}\n")

    # 5. Bulk delete
    print("5️⃣ Bulk Delete:")
    forum_ids = [forum.id for forum in session.scalars(select(Forum)).all()]
    result = soft_deletion.soft_delete_all(session, Forum, forum_ids + [999])
    print(f"  ✓ {len(result.succeeded)} deleted, {len(result.failed)} failed")
    for item in result.failed:
        print(f"    - {item.target}: {item.error}")

    session.close()
    print("\n✅ Done")


if __name__ == "__main__":
    main()
