"""Database storage and models."""

from .database import FeedStorage
from .models import UserModel, FeedModel, FeedFollowModel, PostModel, init_db

__all__ = ["FeedStorage", "UserModel", "FeedModel", "FeedFollowModel", "PostModel", "init_db"]
