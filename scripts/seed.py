"""Seed script: load the demo blog fixtures into the database.

Creates:
1. Two authors (referenced as author-<id>)
2. Three tags (forced identifiers, referenced as tag-<id>)
3. Three posts, one replying to another (referenced as post-<id>)
4. Post/tag links (composite identifier, never referenced)

Idempotent: every record carries its identifier, so a second run reconciles
against the existing rows instead of inserting duplicates.

Usage:
    python -m scripts.seed          # against DATABASE_URL from .env
    pytest tests/scripts/test_seed.py  # against aiosqlite in-memory
"""

import asyncio
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.tables import AuthorRow, PostRow, PostTagRow, TagRow
from src.fixtures.descriptor import Fixture, LoadResult
from src.fixtures.loader import FixtureLoader
from src.fixtures.values import Deferred, ref
from src.repositories.fixture_store import SqlAlchemyFixtureStore

DEMO_AUTHORS = [
    {"author_id": 1, "name": "Ada Lovelace", "email": "ada@example.org"},
    {"author_id": 2, "name": "Grace Hopper", "email": "grace@example.org"},
]

DEMO_TAGS = [
    {"tag_id": 1, "label": "announcements"},
    {"tag_id": 2, "label": "engineering"},
    {"tag_id": 3, "label": "community"},
]

DEMO_POSTS = [
    {"id": "welcome", "title": "Welcome to the blog", "author_id": 1},
    {"id": "release-notes", "title": "Release notes: fixtures", "author_id": 2},
    {"id": "welcome-reply", "title": "Re: Welcome to the blog", "author_id": 2,
     "parent_id": "welcome"},
]

DEMO_POST_TAGS = [
    ("welcome", 1),
    ("welcome", 3),
    ("release-notes", 1),
    ("release-notes", 2),
    ("welcome-reply", 3),
]


def _post_body(post: PostRow, descriptor, store) -> str:
    return f"{post.title}\n\nSeeded by the {descriptor.label} fixture."


class AuthorFixture(Fixture):
    entity_type = AuthorRow
    reference_prefix = "author-"

    def get_records(self):
        return [dict(author) for author in DEMO_AUTHORS]


class TagFixture(Fixture):
    entity_type = TagRow
    reference_prefix = "tag-"

    def get_records(self):
        return [dict(tag) for tag in DEMO_TAGS]


class PostFixture(Fixture):
    entity_type = PostRow
    priority = 1
    reference_prefix = "post-"
    # Replies refer to their parent, which must be committed first.
    flush_every = 1

    def get_records(self):
        records = []
        for post in DEMO_POSTS:
            record = {
                "id": post["id"],
                "title": post["title"],
                "body": Deferred(_post_body),
                "slug": post["title"],
                "author": ref(f"author-{post['author_id']}"),
            }
            if "parent_id" in post:
                record["parent"] = ref(f"post-{post['parent_id']}")
            records.append(record)
        return records


class PostTagFixture(Fixture):
    entity_type = PostTagRow
    priority = 2
    flush_every = 50

    def get_records(self):
        return [{"post_id": post_id, "tag_id": tag_id} for post_id, tag_id in DEMO_POST_TAGS]


def demo_fixtures() -> list[Fixture]:
    """Demo fixtures in declaration order; the loader sorts them by priority."""
    return [PostTagFixture(), PostFixture(), AuthorFixture(), TagFixture()]


async def seed_demo(
    session: AsyncSession,
    *,
    commit_on_flush: bool = False,
) -> list[LoadResult]:
    """Load every demo fixture through one loader run."""
    store = SqlAlchemyFixtureStore(session, commit_on_flush=commit_on_flush)
    loader = FixtureLoader(store)
    return await loader.load_all(demo_fixtures())


# ---------------------------------------------------------------------------
# CLI entry point: python -m scripts.seed
# ---------------------------------------------------------------------------


async def _run_seed() -> None:
    """Create missing tables and load the demo fixtures."""
    from src.config.logging_setup import configure_logging
    from src.config.settings import get_settings
    from src.db.session import Base, engine, get_async_session

    settings = get_settings()
    log = configure_logging(settings)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Final commit on success, rollback on any error.
    unit_of_work = asynccontextmanager(get_async_session)
    try:
        async with unit_of_work() as session:
            results = await seed_demo(
                session, commit_on_flush=settings.FIXTURES_COMMIT_ON_FLUSH,
            )
    except Exception:
        log.error("seed_failed", database=settings.DATABASE_URL)
        raise

    log.info("seed_complete", fixtures=len(results))
    _print_summary(results)
    await engine.dispose()


def _print_summary(results: list[LoadResult]) -> None:
    """Print a table of per-fixture counts."""
    print(f"  {'Fixture':<16} {'Records':>8} {'New':>6} {'Existing':>9} {'Flushes':>8}")
    print(f"  {'-' * 16} {'-' * 8} {'-' * 6} {'-' * 9} {'-' * 8}")
    for result in results:
        print(f"  {result.fixture:<16} {result.total_records:>8} {result.newly_created:>6}"
              f" {result.reconciled:>9} {result.flushes:>8}")


if __name__ == "__main__":
    asyncio.run(_run_seed())
