"""Tests for the fixture loader against the in-memory store.

Covers: batch boundaries, priority ordering, reference availability,
composite identifier rejection, reconciliation, error context and the
loader state machine.
"""

import pytest

from src.fixtures.descriptor import Fixture, FixtureDescriptor, LoadResult
from src.fixtures.errors import (
    ConfigurationError,
    DeferredReferenceError,
    DuplicateReferenceError,
    LoaderStateError,
    ReferenceResolutionError,
    StoreError,
)
from src.fixtures.loader import FixtureLoader, LoaderState
from src.fixtures.store import InMemoryFixtureStore
from src.fixtures.values import Deferred, ref


class Post:
    id: object
    title: str
    parent: object


class Comment:
    id: object
    body: str
    post: object


class Tagging:
    post_id: str
    tag_id: int


class Named:
    id: object
    name: str

    def __str__(self) -> str:
        return self.name


class Anonymous:
    id: object
    name: str


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryFixtureStore:
    return InMemoryFixtureStore({
        Post: ["id"],
        Comment: ["id"],
        Tagging: ["post_id", "tag_id"],
        Named: ["id"],
        Anonymous: ["id"],
    })


@pytest.fixture
def loader(store: InMemoryFixtureStore) -> FixtureLoader:
    return FixtureLoader(store)


def _kinds(store: InMemoryFixtureStore) -> list[str]:
    return [kind for kind, _ in store.events if kind != "find_one"]


def _titles(count: int) -> list[dict]:
    return [{"title": f"Post {i}"} for i in range(1, count + 1)]


# ---------------------------------------------------------------------------
# Batch commit scheduling
# ---------------------------------------------------------------------------


class TestBatchFlushes:
    @pytest.mark.anyio
    async def test_every_three_of_seven(self, loader, store) -> None:
        descriptor = FixtureDescriptor(entity_type=Post, flush_every=3)
        result = await loader.load(descriptor, _titles(7))

        assert result == LoadResult(
            fixture="Post", total_records=7, newly_created=7, reconciled=0, flushes=3,
        )
        assert store.flush_count == 3
        assert store.clear_count == 3
        persist_positions = []
        persisted = 0
        for kind in _kinds(store):
            if kind == "persist":
                persisted += 1
            elif kind == "flush":
                persist_positions.append(persisted)
        assert persist_positions == [3, 6, 7]

    @pytest.mark.anyio
    async def test_end_only_by_default(self, loader, store) -> None:
        result = await loader.load(FixtureDescriptor(entity_type=Post), _titles(5))
        assert result.flushes == 1
        assert _kinds(store) == ["persist"] * 5 + ["flush", "clear"]
        assert len(store.all(Post)) == 5

    @pytest.mark.anyio
    async def test_empty_fixture_still_flushes_once(self, loader, store) -> None:
        result = await loader.load(FixtureDescriptor(entity_type=Post), [])
        assert result.total_records == 0
        assert store.flush_count == 1

    @pytest.mark.anyio
    async def test_clear_disabled(self, loader, store) -> None:
        descriptor = FixtureDescriptor(entity_type=Post, flush_every=1, clear_on_flush=False)
        await loader.load(descriptor, _titles(2))
        assert store.flush_count == 2
        assert store.clear_count == 0

    @pytest.mark.anyio
    async def test_records_may_be_a_generator(self, loader, store) -> None:
        records = ({"title": f"Post {i}"} for i in range(4))
        result = await loader.load(FixtureDescriptor(entity_type=Post, flush_every=2), records)
        assert result.total_records == 4
        assert result.flushes == 2


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    @pytest.mark.anyio
    async def test_lower_priority_fully_persisted_first(self, loader, store) -> None:
        committed_posts_seen = []

        def body(comment, descriptor, store_arg):
            committed_posts_seen.append(len(store_arg.all(Post)))
            return "nice"

        comments = (
            FixtureDescriptor(entity_type=Comment, priority=1),
            [{"body": Deferred(body)}, {"body": Deferred(body)}],
        )
        posts = (FixtureDescriptor(entity_type=Post, priority=0), _titles(3))

        results = await loader.load_all([comments, posts])

        assert [result.fixture for result in results] == ["Post", "Comment"]
        assert committed_posts_seen == [3, 3]
        persisted_types = [type(obj) for kind, obj in store.events if kind == "persist"]
        assert persisted_types == [Post, Post, Post, Comment, Comment]

    @pytest.mark.anyio
    async def test_ties_keep_declaration_order(self, loader) -> None:
        results = await loader.load_all([
            (FixtureDescriptor(entity_type=Comment, name="first"), []),
            (FixtureDescriptor(entity_type=Post, name="second"), []),
            (FixtureDescriptor(entity_type=Named, name="third", priority=-1), []),
        ])
        assert [result.fixture for result in results] == ["third", "first", "second"]

    @pytest.mark.anyio
    async def test_records_in_declaration_order(self, loader, store) -> None:
        await loader.load(FixtureDescriptor(entity_type=Post), _titles(3))
        assert [post.title for post in store.all(Post)] == ["Post 1", "Post 2", "Post 3"]

    @pytest.mark.anyio
    async def test_declarative_fixtures(self, loader, store) -> None:
        class PostFixture(Fixture):
            entity_type = Post
            reference_prefix = "posts-"

            def get_records(self):
                return [{"id": "p1", "title": "First"}]

        class CommentFixture(Fixture):
            entity_type = Comment
            priority = 5

            def get_records(self):
                return [{"body": "Hi", "post": ref("posts-p1")}]

        results = await loader.load_all([CommentFixture(), PostFixture()])
        assert [result.fixture for result in results] == ["PostFixture", "CommentFixture"]
        assert store.all(Comment)[0].post is store.all(Post)[0]


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class TestReferences:
    @pytest.mark.anyio
    async def test_self_reference_with_flush_every_one(self, loader, store) -> None:
        descriptor = FixtureDescriptor(entity_type=Post, reference_prefix="posts-", flush_every=1)
        records = [
            {"id": "p1", "title": "First"},
            {"title": "Second", "parent": ref("posts-p1")},
        ]

        result = await loader.load(descriptor, records)

        first, second = store.all(Post)
        assert result.newly_created == 2
        assert second.parent is first
        assert loader.references.lookup("posts-p1") is first
        # The store assigned the second post's id on flush.
        assert loader.references.lookup(f"posts-{second.id}") is second
        assert len(loader.references) == 2

    @pytest.mark.anyio
    async def test_forward_reference_fails(self, loader, store) -> None:
        descriptor = FixtureDescriptor(entity_type=Post, reference_prefix="posts-")
        records = [
            {"title": "Reply", "parent": ref("posts-p2")},
            {"id": "p2", "title": "Original"},
        ]

        with pytest.raises(ReferenceResolutionError) as excinfo:
            await loader.load(descriptor, records)

        assert excinfo.value.fixture == "Post"
        assert excinfo.value.record_index == 0
        assert "[Post #0]" in str(excinfo.value)
        assert _kinds(store) == []

    @pytest.mark.anyio
    async def test_references_span_fixtures(self, loader, store) -> None:
        await loader.load(
            FixtureDescriptor(entity_type=Post, reference_prefix="posts-"),
            [{"id": "p1", "title": "First"}],
        )
        await loader.load(
            FixtureDescriptor(entity_type=Comment),
            [{"body": "Hi", "post": ref("posts-p1")}],
        )
        assert store.all(Comment)[0].post is store.all(Post)[0]

    @pytest.mark.anyio
    async def test_no_prefix_registers_nothing(self, loader) -> None:
        await loader.load(FixtureDescriptor(entity_type=Post), [{"id": "p1", "title": "x"}])
        assert len(loader.references) == 0

    @pytest.mark.anyio
    async def test_string_fallback_before_flush(self, loader) -> None:
        descriptor = FixtureDescriptor(entity_type=Named, reference_prefix="named-")
        await loader.load(descriptor, [{"name": "alpha"}])
        assert "named-alpha" in loader.references

    @pytest.mark.anyio
    async def test_store_assigned_identifier_after_flush(self, loader) -> None:
        descriptor = FixtureDescriptor(entity_type=Named, reference_prefix="named-", flush_every=1)
        await loader.load(descriptor, [{"name": "alpha"}])
        assert list(loader.references.keys()) == ["named-1"]

    @pytest.mark.anyio
    async def test_custom_accessor(self, loader) -> None:
        descriptor = FixtureDescriptor(
            entity_type=Named, reference_prefix="named-", reference_accessor="name",
        )
        await loader.load(descriptor, [{"name": "beta"}])
        assert "named-beta" in loader.references

    @pytest.mark.anyio
    async def test_no_key_available_is_fatal(self, loader) -> None:
        descriptor = FixtureDescriptor(entity_type=Anonymous, reference_prefix="anon-")
        with pytest.raises(ConfigurationError) as excinfo:
            await loader.load(descriptor, [{"name": "nobody"}])
        assert excinfo.value.record_index == 0

    @pytest.mark.anyio
    async def test_duplicate_key_is_rejected(self, loader) -> None:
        descriptor = FixtureDescriptor(
            entity_type=Named, reference_prefix="named-", reference_accessor="name",
        )
        with pytest.raises(DuplicateReferenceError) as excinfo:
            await loader.load(descriptor, [{"name": "same"}, {"name": "same"}])
        assert excinfo.value.record_index == 1


# ---------------------------------------------------------------------------
# Composite identifiers
# ---------------------------------------------------------------------------


class TestCompositeIdentifiers:
    @pytest.mark.anyio
    async def test_prefix_rejected_before_any_record(self, loader, store) -> None:
        built = []

        def post_id(instance, descriptor, store_arg):
            built.append(instance)
            return "p1"

        descriptor = FixtureDescriptor(entity_type=Tagging, reference_prefix="tagging-")
        with pytest.raises(ConfigurationError):
            await loader.load(descriptor, [{"post_id": Deferred(post_id), "tag_id": 1}])
        assert built == []
        assert store.events == []

    @pytest.mark.anyio
    async def test_load_all_validates_every_fixture_first(self, loader, store) -> None:
        fixtures = [
            (FixtureDescriptor(entity_type=Post), _titles(2)),
            (FixtureDescriptor(entity_type=Tagging, priority=1, reference_prefix="t-"), []),
        ]
        with pytest.raises(ConfigurationError) as excinfo:
            await loader.load_all(fixtures)
        assert excinfo.value.fixture == "Tagging"
        assert store.events == []

    @pytest.mark.anyio
    async def test_composite_without_prefix_loads(self, loader, store) -> None:
        result = await loader.load(
            FixtureDescriptor(entity_type=Tagging),
            [{"post_id": "p1", "tag_id": 1}, {"post_id": "p1", "tag_id": 2}],
        )
        assert result.newly_created == 2
        assert len(store.all(Tagging)) == 2


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class TestReconciliation:
    @pytest.mark.anyio
    async def test_existing_record_is_not_persisted(self, loader, store) -> None:
        existing = Post()
        existing.id = "p1"
        existing.title = "First"
        store.persist(existing)
        await store.flush()
        store.events.clear()

        descriptor = FixtureDescriptor(entity_type=Post, reference_prefix="posts-")
        result = await loader.load(descriptor, [{"id": "p1", "title": "First"}])

        assert result.reconciled == 1
        assert result.newly_created == 0
        assert "persist" not in _kinds(store)
        assert loader.references.lookup("posts-p1") is existing

    @pytest.mark.anyio
    async def test_reload_is_idempotent(self, store) -> None:
        descriptor = FixtureDescriptor(entity_type=Post, flush_every=2)
        records = [{"id": f"p{i}", "title": f"Post {i}"} for i in range(5)]

        first = await FixtureLoader(store).load(descriptor, records)
        second = await FixtureLoader(store).load(descriptor, records)

        assert first.newly_created == 5
        assert second.newly_created == 0
        assert second.reconciled == 5
        assert [post.id for post in store.all(Post)] == [f"p{i}" for i in range(5)]

    @pytest.mark.anyio
    async def test_without_reconciliation_duplicates_fail_in_store(self, store) -> None:
        descriptor = FixtureDescriptor(entity_type=Post, reconcile_existing_ids=False)
        records = [{"id": "p1", "title": "First"}]
        await FixtureLoader(store).load(descriptor, records)

        with pytest.raises(StoreError):
            await FixtureLoader(store).load(descriptor, records)


# ---------------------------------------------------------------------------
# Failures and state
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.anyio
    async def test_deferred_failure_aborts_load(self, loader, store) -> None:
        def broken(instance, descriptor, store_arg):
            raise RuntimeError("no title")

        records = [{"title": "ok"}, {"title": Deferred(broken)}, {"title": "never"}]
        with pytest.raises(DeferredReferenceError) as excinfo:
            await loader.load(FixtureDescriptor(entity_type=Post, flush_every=1), records)

        assert excinfo.value.record_index == 1
        assert [post.title for post in store.all(Post)] == ["ok"]
        assert store.pending == []
        assert loader.state == LoaderState.IDLE

    @pytest.mark.anyio
    async def test_unknown_entity_type(self, loader) -> None:
        class Unmanaged:
            pass

        with pytest.raises(ConfigurationError):
            await loader.load(FixtureDescriptor(entity_type=Unmanaged), [{}])

    @pytest.mark.anyio
    async def test_nested_load_is_rejected(self, loader) -> None:
        async def nested(instance, descriptor, store_arg):
            assert loader.state == LoaderState.LOADING
            await loader.load(FixtureDescriptor(entity_type=Comment), [])

        with pytest.raises(LoaderStateError):
            await loader.load(FixtureDescriptor(entity_type=Post), [{"title": Deferred(nested)}])
        assert loader.state == LoaderState.IDLE

    @pytest.mark.anyio
    async def test_state_during_flush(self, loader, store) -> None:
        states = []
        original_flush = store.flush

        async def recording_flush():
            states.append(loader.state)
            await original_flush()

        store.flush = recording_flush
        await loader.load(FixtureDescriptor(entity_type=Post, flush_every=1), _titles(2))
        assert states == [LoaderState.FLUSHING, LoaderState.FLUSHING]
        assert loader.state == LoaderState.IDLE


# ---------------------------------------------------------------------------
# Declarative fixtures reading references
# ---------------------------------------------------------------------------


class TestFixtureReferences:
    @pytest.mark.anyio
    async def test_deferred_value_from_referenced_record(self, loader, store) -> None:
        class PostFixture(Fixture):
            entity_type = Post
            reference_prefix = "posts-"

            def get_records(self):
                return [{"id": "p1", "title": "First"}]

        class CommentFixture(Fixture):
            entity_type = Comment
            priority = 1

            def get_records(self):
                def body(comment, descriptor, store_arg):
                    return f"About {self.get_reference('posts-p1').title}"

                return [{"body": Deferred(body)}]

        comments = CommentFixture()
        await loader.load_all([comments, PostFixture()])

        assert store.all(Comment)[0].body == "About First"
        assert comments.has_reference("posts-p1")
        assert not comments.has_reference("posts-p2")

    @pytest.mark.anyio
    async def test_missing_reference_aborts_load(self, loader) -> None:
        class CommentFixture(Fixture):
            entity_type = Comment

            def get_records(self):
                return [{"body": Deferred(lambda *_: self.get_reference("posts-nope"))}]

        with pytest.raises(ReferenceResolutionError) as excinfo:
            await loader.load_all([CommentFixture()])
        assert excinfo.value.fixture == "CommentFixture"
        assert excinfo.value.record_index == 0
