"""PostgreSQL-backed implementations of the matching store contracts."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import AsyncIterator, Sequence

import asyncpg

from tunematch.domain.matching.exceptions import Conflict, Unavailable
from tunematch.domain.matching.models import Match, Post, Swipe, SwipeDirection, UserProfile
from tunematch.domain.matching.repositories import (
    ContentStore,
    MatchCreation,
    MatchStore,
    ProfileStore,
    SwipeStore,
)

logger = logging.getLogger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

SCHEMA = """
CREATE TABLE IF NOT EXISTS tm_profiles (
    user_id TEXT PRIMARY KEY,
    document JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS tm_posts (
    id TEXT PRIMARY KEY,
    author_id TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    document JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS tm_posts_created_idx ON tm_posts (created_at DESC);
CREATE INDEX IF NOT EXISTS tm_posts_author_idx ON tm_posts (author_id, created_at DESC);
CREATE TABLE IF NOT EXISTS tm_swipes (
    swiper_id TEXT NOT NULL,
    post_id TEXT NOT NULL,
    post_author_id TEXT NOT NULL,
    direction TEXT NOT NULL CHECK (direction IN ('like', 'pass')),
    created_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (swiper_id, post_id)
);
CREATE INDEX IF NOT EXISTS tm_swipes_post_idx ON tm_swipes (post_id);
CREATE TABLE IF NOT EXISTS tm_matches (
    id TEXT PRIMARY KEY,
    user_a TEXT NOT NULL,
    user_b TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE
);
CREATE INDEX IF NOT EXISTS tm_matches_user_a_idx ON tm_matches (user_a);
CREATE INDEX IF NOT EXISTS tm_matches_user_b_idx ON tm_matches (user_b);
"""


async def ensure_schema(pool: asyncpg.Pool) -> None:
    try:
        await pool.execute(SCHEMA)
    except _DB_ERRORS as exc:
        raise Unavailable("postgres_unavailable") from exc


def _document(value) -> dict:
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _row_to_post(row: asyncpg.Record) -> Post | None:
    try:
        return Post.from_record(_document(row["document"]))
    except (KeyError, ValueError, TypeError):
        logger.warning("skipping malformed post document", extra={"post_id": row.get("id")})
        return None


def _rows_to_posts(rows: Sequence[asyncpg.Record]) -> list[Post]:
    posts = [_row_to_post(row) for row in rows]
    return [post for post in posts if post is not None]


def _row_to_swipe(row: asyncpg.Record) -> Swipe:
    return Swipe(
        swiper_id=str(row["swiper_id"]),
        post_id=str(row["post_id"]),
        post_author_id=str(row["post_author_id"]),
        direction=SwipeDirection.parse(row["direction"]),
        created_at=row["created_at"],
    )


def _row_to_match(row: asyncpg.Record) -> Match:
    return Match.from_record(
        {
            "id": row["id"],
            "user_ids": [row["user_a"], row["user_b"]],
            "created_at": row["created_at"],
            "is_active": row["is_active"],
        }
    )


class PostgresProfileStore(ProfileStore):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get(self, user_id: str) -> UserProfile | None:
        try:
            row = await self._pool.fetchrow("SELECT document FROM tm_profiles WHERE user_id = $1", user_id)
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        if row is None:
            return None
        return UserProfile.from_record(_document(row["document"]))

    async def save(self, profile: UserProfile) -> None:
        try:
            await self._pool.execute(
                """
                INSERT INTO tm_profiles (user_id, document, updated_at)
                VALUES ($1, $2::jsonb, NOW())
                ON CONFLICT (user_id)
                DO UPDATE SET document = EXCLUDED.document, updated_at = EXCLUDED.updated_at
                """,
                profile.user_id,
                json.dumps(profile.to_record()),
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc


class PostgresContentStore(ContentStore):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def add(self, post: Post) -> None:
        try:
            await self._pool.execute(
                """
                INSERT INTO tm_posts (id, author_id, created_at, document)
                VALUES ($1, $2, $3, $4::jsonb)
                ON CONFLICT (id) DO UPDATE SET document = EXCLUDED.document
                """,
                post.id,
                post.author_id,
                post.created_at,
                json.dumps(post.to_record()),
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc

    async def _fetch(self, query: str, *args) -> list[asyncpg.Record]:
        try:
            return list(await self._pool.fetch(query, *args))
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc

    async def active_posts_excluding_author(
        self,
        author_id: str,
        since: datetime,
        *,
        limit: int,
    ) -> AsyncIterator[Post]:
        rows = await self._fetch(
            """
            SELECT id, document FROM tm_posts
            WHERE author_id <> $1 AND created_at > $2
            ORDER BY created_at DESC, id DESC
            LIMIT $3
            """,
            author_id,
            since,
            limit,
        )
        for post in _rows_to_posts(rows):
            yield post

    async def active_posts_by_author(self, author_id: str, since: datetime) -> Sequence[Post]:
        rows = await self._fetch(
            "SELECT id, document FROM tm_posts WHERE author_id = $1 AND created_at > $2 ORDER BY created_at DESC",
            author_id,
            since,
        )
        return _rows_to_posts(rows)

    async def posts_by_author(self, author_id: str) -> Sequence[Post]:
        rows = await self._fetch(
            "SELECT id, document FROM tm_posts WHERE author_id = $1 ORDER BY created_at DESC",
            author_id,
        )
        return _rows_to_posts(rows)

    async def get_post(self, post_id: str) -> Post | None:
        try:
            row = await self._pool.fetchrow("SELECT id, document FROM tm_posts WHERE id = $1", post_id)
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return _row_to_post(row) if row is not None else None

    async def expired_post_ids(self, before: datetime, *, limit: int) -> Sequence[str]:
        rows = await self._fetch(
            "SELECT id FROM tm_posts WHERE created_at <= $1 ORDER BY created_at LIMIT $2",
            before,
            limit,
        )
        return [str(row["id"]) for row in rows]

    async def delete_posts(self, post_ids: Sequence[str]) -> int:
        if not post_ids:
            return 0
        rows = await self._fetch(
            "DELETE FROM tm_posts WHERE id = ANY($1::text[]) RETURNING 1",
            list(post_ids),
        )
        return len(rows)


class PostgresSwipeStore(SwipeStore):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def append(self, swipe: Swipe) -> None:
        try:
            await self._pool.execute(
                """
                INSERT INTO tm_swipes (swiper_id, post_id, post_author_id, direction, created_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (swiper_id, post_id)
                DO UPDATE SET direction = EXCLUDED.direction, created_at = EXCLUDED.created_at
                WHERE tm_swipes.direction <> EXCLUDED.direction
                """,
                swipe.swiper_id,
                swipe.post_id,
                swipe.post_author_id,
                swipe.direction.value,
                swipe.created_at,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc

    async def has_like(self, user_id: str, post_id: str) -> bool:
        try:
            value = await self._pool.fetchval(
                "SELECT 1 FROM tm_swipes WHERE swiper_id = $1 AND post_id = $2 AND direction = 'like'",
                user_id,
                post_id,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return value is not None

    async def liked_post_ids_for(self, user_id: str, limit: int) -> list[str]:
        try:
            rows = await self._pool.fetch(
                """
                SELECT post_id FROM tm_swipes
                WHERE swiper_id = $1 AND direction = 'like'
                ORDER BY created_at DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return [str(row["post_id"]) for row in rows]

    async def swiped_post_ids(self, user_id: str) -> set[str]:
        try:
            rows = await self._pool.fetch("SELECT post_id FROM tm_swipes WHERE swiper_id = $1", user_id)
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return {str(row["post_id"]) for row in rows}

    async def history(self, user_id: str, limit: int) -> list[Swipe]:
        try:
            rows = await self._pool.fetch(
                """
                SELECT swiper_id, post_id, post_author_id, direction, created_at
                FROM tm_swipes
                WHERE swiper_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return [_row_to_swipe(row) for row in rows]

    async def delete_for_posts(self, post_ids: Sequence[str]) -> int:
        if not post_ids:
            return 0
        try:
            rows = await self._pool.fetch(
                "DELETE FROM tm_swipes WHERE post_id = ANY($1::text[]) RETURNING 1",
                list(post_ids),
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return len(rows)


_MATCH_COLUMNS = "id, user_a, user_b, created_at, is_active"


class PostgresMatchStore(MatchStore):
    """Match rows keyed by pair key; an inactive row is revived in place."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create_if_absent(self, key: str, match: Match) -> MatchCreation:
        low, high = match.user_ids
        try:
            row = await self._pool.fetchrow(
                f"""
                INSERT INTO tm_matches (id, user_a, user_b, created_at, is_active)
                VALUES ($1, $2, $3, $4, TRUE)
                ON CONFLICT (id)
                DO UPDATE SET is_active = TRUE, created_at = EXCLUDED.created_at
                WHERE tm_matches.is_active = FALSE
                RETURNING {_MATCH_COLUMNS}
                """,
                key,
                low,
                high,
                match.created_at,
            )
            if row is not None:
                return MatchCreation(match=_row_to_match(row), created=True)
            existing = await self._pool.fetchrow(
                f"SELECT {_MATCH_COLUMNS} FROM tm_matches WHERE id = $1",
                key,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        if existing is None:
            raise Conflict("match_vanished")
        return MatchCreation(match=_row_to_match(existing), created=False)

    async def get(self, key: str) -> Match | None:
        try:
            row = await self._pool.fetchrow(f"SELECT {_MATCH_COLUMNS} FROM tm_matches WHERE id = $1", key)
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return _row_to_match(row) if row is not None else None

    async def active_match_ids(self, user_id: str) -> set[str]:
        try:
            rows = await self._pool.fetch(
                """
                SELECT CASE WHEN user_a = $1 THEN user_b ELSE user_a END AS other_id
                FROM tm_matches
                WHERE (user_a = $1 OR user_b = $1) AND is_active = TRUE
                """,
                user_id,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return {str(row["other_id"]) for row in rows}

    async def list_for_user(self, user_id: str) -> list[Match]:
        try:
            rows = await self._pool.fetch(
                f"""
                SELECT {_MATCH_COLUMNS} FROM tm_matches
                WHERE user_a = $1 OR user_b = $1
                ORDER BY created_at DESC
                """,
                user_id,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return [_row_to_match(row) for row in rows]

    async def deactivate(self, key: str) -> Match | None:
        try:
            row = await self._pool.fetchrow(
                f"UPDATE tm_matches SET is_active = FALSE WHERE id = $1 RETURNING {_MATCH_COLUMNS}",
                key,
            )
        except _DB_ERRORS as exc:
            raise Unavailable("postgres_unavailable") from exc
        return _row_to_match(row) if row is not None else None


__all__ = [
    "PostgresContentStore",
    "PostgresMatchStore",
    "PostgresProfileStore",
    "PostgresSwipeStore",
    "SCHEMA",
    "ensure_schema",
]
