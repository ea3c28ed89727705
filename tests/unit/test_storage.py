"""Unit tests for storage module."""

from datetime import datetime, timedelta, timezone

import pytest

from gator.errors import DuplicateKeyError, NotFoundError, PersistenceError


class TestUsers:
    """Tests for user CRUD."""

    def test_create_and_get_user(self, storage):
        """Should save and retrieve a user."""
        created = storage.create_user("bob")
        assert created.id > 0

        fetched = storage.get_user("bob")
        assert fetched.id == created.id
        assert fetched.created_at.tzinfo is not None

    def test_duplicate_user(self, storage, user):
        """Should raise DuplicateKeyError for a taken name."""
        with pytest.raises(DuplicateKeyError):
            storage.create_user(user.name)

    def test_missing_user(self, storage):
        with pytest.raises(NotFoundError):
            storage.get_user("nobody")

    def test_delete_all_users_cascades(self, storage, user):
        """Deleting users should remove their feeds, follows and posts."""
        feed = storage.create_feed("Blog", "https://example.com/rss", user.id)
        storage.create_feed_follow(user.id, feed.id)
        storage.create_post(feed.id, "Hello", "https://example.com/hello")

        assert storage.delete_all_users() == 1
        assert storage.list_users() == []
        assert storage.list_feeds() == []
        assert storage.get_stats()["posts"] == 0


class TestFeeds:
    """Tests for the feed directory."""

    def test_create_and_list_feeds(self, storage, user):
        """Should list feeds in insertion order with owner names."""
        storage.create_feed("A", "https://a.example.com/rss", user.id)
        storage.create_feed("B", "https://b.example.com/rss", user.id)

        feeds = storage.list_feeds()
        assert [f.name for f in feeds] == ["A", "B"]
        assert all(f.user_name == "alice" for f in feeds)
        assert all(f.last_fetched_at is None for f in feeds)

    def test_duplicate_feed_url(self, storage, user):
        """Feed URLs should be globally unique."""
        storage.create_feed("A", "https://a.example.com/rss", user.id)
        other = storage.create_user("bob")
        with pytest.raises(DuplicateKeyError):
            storage.create_feed("A again", "https://a.example.com/rss", other.id)

    def test_get_feed_by_url(self, storage, user):
        created = storage.create_feed("A", "https://a.example.com/rss", user.id)
        assert storage.get_feed_by_url("https://a.example.com/rss").id == created.id
        with pytest.raises(NotFoundError):
            storage.get_feed_by_url("https://missing.example.com/rss")

    def test_record_fetch_attempt(self, storage, user):
        """Should set last_fetched_at to the attempt time."""
        feed = storage.create_feed("A", "https://a.example.com/rss", user.id)
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        storage.record_fetch_attempt(feed.id, now)

        assert storage.get_feed_by_url(feed.url).last_fetched_at == now

    def test_record_fetch_attempt_is_monotonic(self, storage, user):
        """An older timestamp should never move last_fetched_at back."""
        feed = storage.create_feed("A", "https://a.example.com/rss", user.id)
        later = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        storage.record_fetch_attempt(feed.id, later)
        storage.record_fetch_attempt(feed.id, later - timedelta(hours=1))

        assert storage.get_feed_by_url(feed.url).last_fetched_at == later

    def test_record_fetch_attempt_converts_to_utc(self, storage, user):
        feed = storage.create_feed("A", "https://a.example.com/rss", user.id)
        local = datetime(2024, 1, 1, 5, 0, tzinfo=timezone(timedelta(hours=-7)))

        storage.record_fetch_attempt(feed.id, local)

        stored = storage.get_feed_by_url(feed.url).last_fetched_at
        assert stored == local
        assert stored.tzinfo == timezone.utc

    def test_next_feed_empty(self, storage):
        assert storage.get_next_feed_to_fetch() is None


class TestFeedFollows:
    """Tests for follows."""

    def test_follow_and_list(self, storage, user):
        feed = storage.create_feed("Blog", "https://example.com/rss", user.id)

        follow = storage.create_feed_follow(user.id, feed.id)
        assert follow.user_name == "alice"
        assert follow.feed_name == "Blog"

        follows = storage.get_feed_follows_for_user(user.id)
        assert [f.feed_name for f in follows] == ["Blog"]

    def test_duplicate_follow(self, storage, user):
        feed = storage.create_feed("Blog", "https://example.com/rss", user.id)
        storage.create_feed_follow(user.id, feed.id)
        with pytest.raises(DuplicateKeyError):
            storage.create_feed_follow(user.id, feed.id)

    def test_unfollow(self, storage, user):
        feed = storage.create_feed("Blog", "https://example.com/rss", user.id)
        storage.create_feed_follow(user.id, feed.id)

        assert storage.delete_feed_follow(user.id, feed.id) is True
        assert storage.delete_feed_follow(user.id, feed.id) is False
        assert storage.get_feed_follows_for_user(user.id) == []


class TestPosts:
    """Tests for the post store."""

    @pytest.fixture
    def feed(self, storage, user):
        return storage.create_feed("Blog", "https://example.com/rss", user.id)

    def test_create_post(self, storage, feed):
        """Should save a post with optional fields."""
        published = datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)
        post = storage.create_post(
            feed.id, "Hello", "https://example.com/hello",
            description="Body", published_at=published,
        )
        assert post.id > 0

        posts = storage.get_posts_for_feed(feed.id)
        assert len(posts) == 1
        assert posts[0].description == "Body"
        assert posts[0].published_at == published

    def test_optional_fields_absent(self, storage, feed):
        storage.create_post(feed.id, "Hello", "https://example.com/hello")
        post = storage.get_posts_for_feed(feed.id)[0]
        assert post.description is None
        assert post.published_at is None

    def test_duplicate_url(self, storage, feed):
        """Should raise DuplicateKeyError for a known URL."""
        storage.create_post(feed.id, "Hello", "https://example.com/hello")
        with pytest.raises(DuplicateKeyError):
            storage.create_post(feed.id, "Hello again", "https://example.com/hello")
        assert len(storage.get_posts_for_feed(feed.id)) == 1

    def test_unknown_feed_is_persistence_error(self, storage, feed):
        """Non-duplicate failures should raise PersistenceError, not DuplicateKeyError."""
        with pytest.raises(PersistenceError) as exc_info:
            storage.create_post(feed.id + 100, "Orphan", "https://example.com/orphan")
        assert not isinstance(exc_info.value, DuplicateKeyError)

    def test_posts_for_user(self, storage, user, feed):
        """Should return newest posts from followed feeds only, undated last."""
        other = storage.create_feed("Other", "https://other.example.com/rss", user.id)
        storage.create_feed_follow(user.id, feed.id)

        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        storage.create_post(feed.id, "Old", "https://example.com/old", published_at=base)
        storage.create_post(feed.id, "New", "https://example.com/new", published_at=base + timedelta(days=1))
        storage.create_post(feed.id, "Undated", "https://example.com/undated")
        storage.create_post(other.id, "Unfollowed", "https://other.example.com/post", published_at=base)

        posts = storage.get_posts_for_user(user.id, limit=10)
        assert [p.title for p in posts] == ["New", "Old", "Undated"]
        assert all(p.feed_name == "Blog" for p in posts)

        assert [p.title for p in storage.get_posts_for_user(user.id, limit=1)] == ["New"]

    def test_stats(self, storage, feed):
        storage.create_post(feed.id, "Hello", "https://example.com/hello")
        stats = storage.get_stats()
        assert stats == {"users": 1, "feeds": 1, "never_fetched_feeds": 1, "posts": 1}
