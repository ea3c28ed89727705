"""Database operations for users, feeds, follows and posts."""

from datetime import datetime, timezone
from typing import Optional, List
from pathlib import Path

from sqlalchemy import or_
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import structlog

from .models import UserModel, FeedModel, FeedFollowModel, PostModel, init_db
from ..config.settings import settings
from ..errors import DuplicateKeyError, NotFoundError, PersistenceError
from ..ingestion.interfaces import User, Feed, FeedFollow, Post, StorageInterface

logger = structlog.get_logger()


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_unique_violation(error: IntegrityError) -> bool:
    """True for a unique constraint failure on SQLite or PostgreSQL."""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig)


def _persistence_error(error: SQLAlchemyError, what: str) -> PersistenceError:
    if isinstance(error, IntegrityError) and _is_unique_violation(error):
        return DuplicateKeyError(f"{what} already exists")
    return PersistenceError(f"couldn't save {what}: {error}")


class FeedStorage(StorageInterface):
    """SQLAlchemy-backed store for the aggregator."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///"):
            db_path = database_url.replace("sqlite:///", "")
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = init_db(database_url)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    # Users

    def create_user(self, name: str) -> User:
        """Create a user, raise DuplicateKeyError if the name is taken."""
        session = self.Session()
        try:
            model = UserModel(name=name)
            session.add(model)
            session.commit()
            logger.debug("user_created", id=model.id, name=name)
            return self._model_to_user(model)
        except SQLAlchemyError as e:
            session.rollback()
            raise _persistence_error(e, f"user {name}") from e
        finally:
            session.close()

    def get_user(self, name: str) -> User:
        """Get user by name."""
        session = self.Session()
        try:
            model = session.query(UserModel)\
                .filter(UserModel.name == name)\
                .first()
            if model is None:
                raise NotFoundError(f"user {name} doesn't exist")
            return self._model_to_user(model)
        finally:
            session.close()

    def list_users(self) -> List[User]:
        """All users in registration order."""
        session = self.Session()
        try:
            models = session.query(UserModel).order_by(UserModel.id).all()
            return [self._model_to_user(m) for m in models]
        finally:
            session.close()

    def delete_all_users(self) -> int:
        """Delete every user; their feeds, follows and posts cascade."""
        session = self.Session()
        try:
            count = session.query(UserModel).delete(synchronize_session=False)
            session.commit()
            logger.info("users_deleted", count=count)
            return count
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't reset database: {e}") from e
        finally:
            session.close()

    # Feeds

    def create_feed(self, name: str, url: str, user_id: int) -> Feed:
        """Create a feed, raise DuplicateKeyError if the URL exists."""
        session = self.Session()
        try:
            model = FeedModel(name=name, url=url, user_id=user_id)
            session.add(model)
            session.commit()
            logger.info("feed_created", id=model.id, name=name, url=url)
            return self._model_to_feed(model)
        except SQLAlchemyError as e:
            session.rollback()
            raise _persistence_error(e, f"feed with URL {url}") from e
        finally:
            session.close()

    def list_feeds(self) -> List[Feed]:
        """All feeds in insertion order, with owner names."""
        session = self.Session()
        try:
            rows = session.query(FeedModel, UserModel.name)\
                .outerjoin(UserModel, FeedModel.user_id == UserModel.id)\
                .order_by(FeedModel.id)\
                .all()
            return [self._model_to_feed(m, user_name=u) for m, u in rows]
        finally:
            session.close()

    def get_feed_by_url(self, url: str) -> Feed:
        """Get feed by URL."""
        session = self.Session()
        try:
            model = session.query(FeedModel)\
                .filter(FeedModel.url == url)\
                .first()
            if model is None:
                raise NotFoundError(f"no feed with URL {url}")
            return self._model_to_feed(model)
        finally:
            session.close()

    def record_fetch_attempt(self, feed_id: int, fetched_at: datetime) -> None:
        """Advance last_fetched_at; an older timestamp never moves it back."""
        fetched_at = _to_utc(fetched_at)
        session = self.Session()
        try:
            session.query(FeedModel)\
                .filter(FeedModel.id == feed_id)\
                .filter(or_(
                    FeedModel.last_fetched_at.is_(None),
                    FeedModel.last_fetched_at < fetched_at,
                ))\
                .update(
                    {"last_fetched_at": fetched_at, "updated_at": fetched_at},
                    synchronize_session=False,
                )
            session.commit()
            logger.debug("feed_fetch_recorded", feed_id=feed_id, at=fetched_at.isoformat())
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't mark feed {feed_id} as fetched: {e}") from e
        finally:
            session.close()

    def get_next_feed_to_fetch(self) -> Optional[Feed]:
        """Never-fetched feeds first, then the stalest; ties by insertion order."""
        session = self.Session()
        try:
            model = session.query(FeedModel)\
                .order_by(
                    FeedModel.last_fetched_at.asc().nulls_first(),
                    FeedModel.id.asc(),
                )\
                .first()
            return self._model_to_feed(model) if model else None
        finally:
            session.close()

    # Follows

    def create_feed_follow(self, user_id: int, feed_id: int) -> FeedFollow:
        """Follow a feed, raise DuplicateKeyError if already following."""
        session = self.Session()
        try:
            model = FeedFollowModel(user_id=user_id, feed_id=feed_id)
            session.add(model)
            session.commit()

            user = session.get(UserModel, user_id)
            feed = session.get(FeedModel, feed_id)
            return FeedFollow(
                id=model.id,
                user_id=user_id,
                feed_id=feed_id,
                user_name=user.name if user else "",
                feed_name=feed.name if feed else "",
                created_at=_to_utc(model.created_at),
            )
        except SQLAlchemyError as e:
            session.rollback()
            raise _persistence_error(e, "feed follow") from e
        finally:
            session.close()

    def get_feed_follows_for_user(self, user_id: int) -> List[FeedFollow]:
        """Feeds followed by a user, oldest follow first."""
        session = self.Session()
        try:
            rows = session.query(FeedFollowModel, FeedModel.name, UserModel.name)\
                .join(FeedModel, FeedFollowModel.feed_id == FeedModel.id)\
                .join(UserModel, FeedFollowModel.user_id == UserModel.id)\
                .filter(FeedFollowModel.user_id == user_id)\
                .order_by(FeedFollowModel.id)\
                .all()
            return [
                FeedFollow(
                    id=m.id,
                    user_id=m.user_id,
                    feed_id=m.feed_id,
                    user_name=user_name,
                    feed_name=feed_name,
                    created_at=_to_utc(m.created_at),
                )
                for m, feed_name, user_name in rows
            ]
        finally:
            session.close()

    def delete_feed_follow(self, user_id: int, feed_id: int) -> bool:
        """Unfollow a feed. Returns False if the user wasn't following it."""
        session = self.Session()
        try:
            count = session.query(FeedFollowModel)\
                .filter(FeedFollowModel.user_id == user_id)\
                .filter(FeedFollowModel.feed_id == feed_id)\
                .delete(synchronize_session=False)
            session.commit()
            return count > 0
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't unfollow feed: {e}") from e
        finally:
            session.close()

    # Posts

    def create_post(
        self,
        feed_id: int,
        title: str,
        url: str,
        description: Optional[str] = None,
        published_at: Optional[datetime] = None,
    ) -> Post:
        """Save a post, raise DuplicateKeyError if the URL is already known."""
        session = self.Session()
        try:
            model = PostModel(
                feed_id=feed_id,
                title=title,
                url=url,
                description=description,
                published_at=_to_utc(published_at),
            )
            session.add(model)
            session.commit()
            logger.debug("post_saved", id=model.id, url=url[:80])
            return self._model_to_post(model)
        except SQLAlchemyError as e:
            session.rollback()
            raise _persistence_error(e, f"post {url}") from e
        finally:
            session.close()

    def get_posts_for_user(self, user_id: int, limit: int = 2) -> List[Post]:
        """Newest posts from the feeds a user follows."""
        session = self.Session()
        try:
            rows = session.query(PostModel, FeedModel.name)\
                .join(FeedModel, PostModel.feed_id == FeedModel.id)\
                .join(FeedFollowModel, FeedFollowModel.feed_id == FeedModel.id)\
                .filter(FeedFollowModel.user_id == user_id)\
                .order_by(
                    PostModel.published_at.desc().nulls_last(),
                    PostModel.id.desc(),
                )\
                .limit(limit)\
                .all()
            return [self._model_to_post(m, feed_name=name) for m, name in rows]
        finally:
            session.close()

    def get_posts_for_feed(self, feed_id: int) -> List[Post]:
        """All posts of a feed in insertion order."""
        session = self.Session()
        try:
            models = session.query(PostModel)\
                .filter(PostModel.feed_id == feed_id)\
                .order_by(PostModel.id)\
                .all()
            return [self._model_to_post(m) for m in models]
        finally:
            session.close()

    def get_stats(self) -> dict:
        """Get database statistics."""
        session = self.Session()
        try:
            return {
                "users": session.query(UserModel).count(),
                "feeds": session.query(FeedModel).count(),
                "never_fetched_feeds": session.query(FeedModel)
                    .filter(FeedModel.last_fetched_at.is_(None)).count(),
                "posts": session.query(PostModel).count(),
            }
        finally:
            session.close()

    def _model_to_user(self, model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            created_at=_to_utc(model.created_at),
            updated_at=_to_utc(model.updated_at),
        )

    def _model_to_feed(self, model: FeedModel, user_name: str = None) -> Feed:
        """Convert database model to Feed."""
        return Feed(
            id=model.id,
            name=model.name,
            url=model.url,
            user_id=model.user_id,
            user_name=user_name,
            created_at=_to_utc(model.created_at),
            updated_at=_to_utc(model.updated_at),
            last_fetched_at=_to_utc(model.last_fetched_at),
        )

    def _model_to_post(self, model: PostModel, feed_name: str = "") -> Post:
        """Convert database model to Post."""
        return Post(
            id=model.id,
            feed_id=model.feed_id,
            title=model.title,
            url=model.url,
            description=model.description,
            published_at=_to_utc(model.published_at),
            created_at=_to_utc(model.created_at),
            updated_at=_to_utc(model.updated_at),
            feed_name=feed_name,
        )
