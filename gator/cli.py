"""Command-line interface.

Usage:
    gator register <name>
    gator login <name>
    gator addfeed <name> <url>
    gator agg <interval>          # e.g. 30s, 1m, 1h
    gator browse [limit]
    gator fetch <url>             # one-shot, nothing is saved

Run ``gator --help`` for the full command list.
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, NamedTuple, Optional

from .config.logging_setup import configure_logging
from .config.settings import settings
from .config.user_config import UserConfig
from .errors import ConfigError, DuplicateKeyError, GatorError, NotFoundError
from .ingestion.fetcher import RSSFetcher
from .ingestion.interfaces import User
from .pipeline.poller import parse_interval, run_aggregation
from .storage.database import FeedStorage
from .storage.factory import get_database_url

DESCRIPTION_PREVIEW_CHARS = 200


@dataclass
class State:
    """What every command gets: the user config and a lazily opened store."""
    config: UserConfig
    config_path: Optional[Path] = None
    database_url: Optional[str] = None
    _storage: Optional[FeedStorage] = None

    @property
    def storage(self) -> FeedStorage:
        if self._storage is None:
            url = self.database_url or get_database_url(self.config)
            self._storage = FeedStorage(url)
        return self._storage

    def current_user(self) -> User:
        name = self.config.current_user_name
        if not name:
            raise ConfigError("no user logged in, run 'gator login <name>' first")
        try:
            return self.storage.get_user(name)
        except NotFoundError as e:
            raise ConfigError(f"couldn't get current user: {e}") from e


def print_header(title: str):
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80)


# Commands without a user

def cmd_register(state: State, args):
    """Create a user and log in as them."""
    try:
        user = state.storage.create_user(args.name)
    except DuplicateKeyError as e:
        raise GatorError(f"user {args.name} already exists") from e
    state.config.set_user(user.name, state.config_path)

    print("User created successfully:")
    print(f"  ID: {user.id}")
    print(f"  Name: {user.name}")
    print(f"  Created at: {user.created_at}")


def cmd_login(state: State, args):
    """Switch the current user."""
    user = state.storage.get_user(args.name)
    state.config.set_user(user.name, state.config_path)
    print(f"User has been set to: {user.name}")


def cmd_reset(state: State, args):
    """Delete all users (and, by cascade, their feeds and posts)."""
    state.storage.delete_all_users()
    print("Database has been reset successfully")


def cmd_users(state: State, args):
    users = state.storage.list_users()
    if not users:
        print("No users found")
        return
    for user in users:
        marker = " (current)" if user.name == state.config.current_user_name else ""
        print(f"* {user.name}{marker}")


def cmd_feeds(state: State, args):
    feeds = state.storage.list_feeds()
    if not feeds:
        print("No feeds found")
        return
    print("Feeds:")
    for feed in feeds:
        print(f"* Name: {feed.name}")
        print(f"  URL: {feed.url}")
        print(f"  User: {feed.user_name}")
        print(f"  Last fetched: {feed.last_fetched_at or 'never'}")
        print()


def cmd_agg(state: State, args):
    """Aggregate forever, one feed per tick."""
    interval = parse_interval(args.interval)
    print(f"Collecting feeds every {args.interval}")
    asyncio.run(run_aggregation(state.storage, interval))


def cmd_fetch(state: State, args):
    """Fetch a feed and print it without saving anything."""
    feed = asyncio.run(RSSFetcher().fetch_feed(args.url))

    print_header(feed.title or args.url)
    if feed.link:
        print(f"  {feed.link}")
    if feed.description:
        print(f"  {feed.description}")
    for item in feed.items:
        print(f"\n* {item.title}")
        print(f"  {item.link}")
        if item.pub_date:
            print(f"  Published: {item.pub_date}")


# Commands for the logged-in user

def cmd_addfeed(state: State, args, user: User):
    """Add a feed and follow it."""
    try:
        feed = state.storage.create_feed(args.name, args.url, user.id)
    except DuplicateKeyError as e:
        raise GatorError(f"feed with URL {args.url} already exists") from e
    state.storage.create_feed_follow(user.id, feed.id)

    print("Feed created successfully:")
    print(f"  ID: {feed.id}")
    print(f"  Name: {feed.name}")
    print(f"  URL: {feed.url}")
    print(f"  User ID: {feed.user_id}")
    print(f"  Created at: {feed.created_at}")
    print("(Automatically followed)")


def cmd_follow(state: State, args, user: User):
    feed = state.storage.get_feed_by_url(args.url)
    try:
        follow = state.storage.create_feed_follow(user.id, feed.id)
    except DuplicateKeyError as e:
        raise GatorError("already following this feed") from e
    print(f"{follow.user_name} is now following {follow.feed_name}")


def cmd_following(state: State, args, user: User):
    follows = state.storage.get_feed_follows_for_user(user.id)
    if not follows:
        print("Not following any feeds")
        return
    print(f"Feeds followed by {user.name}:")
    for follow in follows:
        print(f"* {follow.feed_name}")


def cmd_unfollow(state: State, args, user: User):
    feed = state.storage.get_feed_by_url(args.url)
    if not state.storage.delete_feed_follow(user.id, feed.id):
        raise GatorError(f"{user.name} isn't following {feed.name}")
    print(f"{user.name} has unfollowed {feed.name}")


def cmd_browse(state: State, args, user: User):
    """Newest posts from followed feeds."""
    if args.limit <= 0:
        raise ConfigError(f"invalid limit: {args.limit}")

    posts = state.storage.get_posts_for_user(user.id, limit=args.limit)
    if not posts:
        print("No posts found. Follow some feeds first!")
        return

    print(f"Found {len(posts)} posts for {user.name}:")
    print("=" * 80)
    for post in posts:
        print(f"\nTitle: {post.title}")
        print(f"URL: {post.url}")
        if post.description:
            desc = post.description
            if len(desc) > DESCRIPTION_PREVIEW_CHARS:
                desc = desc[:DESCRIPTION_PREVIEW_CHARS] + "..."
            print(f"Description: {desc}")
        if post.published_at:
            print(f"Published: {post.published_at:%Y-%m-%d %H:%M:%S}")
        print("-" * 80)


class Command(NamedTuple):
    handler: Callable
    needs_user: bool


COMMANDS: Dict[str, Command] = {
    "register": Command(cmd_register, needs_user=False),
    "login": Command(cmd_login, needs_user=False),
    "reset": Command(cmd_reset, needs_user=False),
    "users": Command(cmd_users, needs_user=False),
    "feeds": Command(cmd_feeds, needs_user=False),
    "agg": Command(cmd_agg, needs_user=False),
    "fetch": Command(cmd_fetch, needs_user=False),
    "addfeed": Command(cmd_addfeed, needs_user=True),
    "follow": Command(cmd_follow, needs_user=True),
    "following": Command(cmd_following, needs_user=True),
    "unfollow": Command(cmd_unfollow, needs_user=True),
    "browse": Command(cmd_browse, needs_user=True),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gator",
        description="Aggregate RSS feeds into a local database",
    )
    parser.add_argument("--config", type=Path, help="User config file (default ~/.gatorconfig.json)")
    parser.add_argument("--database-url", help="SQLAlchemy database URL")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    p = subparsers.add_parser("register", help="Create a user and log in")
    p.add_argument("name")

    p = subparsers.add_parser("login", help="Set the current user")
    p.add_argument("name")

    subparsers.add_parser("reset", help="Delete all users, feeds and posts")
    subparsers.add_parser("users", help="List users")
    subparsers.add_parser("feeds", help="List all feeds")

    p = subparsers.add_parser("agg", help="Fetch feeds forever, one per interval")
    p.add_argument("interval", help="Time between requests, e.g. 30s, 1m, 1h")

    p = subparsers.add_parser("fetch", help="Fetch and print a feed without saving it")
    p.add_argument("url")

    p = subparsers.add_parser("addfeed", help="Add a feed and follow it")
    p.add_argument("name")
    p.add_argument("url")

    p = subparsers.add_parser("follow", help="Follow an existing feed")
    p.add_argument("url")

    subparsers.add_parser("following", help="List followed feeds")

    p = subparsers.add_parser("unfollow", help="Stop following a feed")
    p.add_argument("url")

    p = subparsers.add_parser("browse", help="Show newest posts from followed feeds")
    p.add_argument("limit", type=int, nargs="?", default=2, help="Max posts (default 2)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(settings.log_level, settings.log_json)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        state = State(
            config=UserConfig.read(args.config),
            config_path=args.config,
            database_url=args.database_url,
        )
        if command.needs_user:
            command.handler(state, args, state.current_user())
        else:
            command.handler(state, args)
    except GatorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
