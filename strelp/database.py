"""Storage of presences and GitHub link settings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.pool import StaticPool

from strelp.models import Presence

_metadata = sa.MetaData()

_presences = sa.Table(
    "presences",
    _metadata,
    sa.Column("user_id", sa.Text, primary_key=True),
    sa.Column("data", sa.JSON, nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
)

_github = sa.Table(
    "github_settings",
    _metadata,
    sa.Column("user_id", sa.Text, primary_key=True),
    sa.Column("access_token", sa.Text, nullable=False),
    sa.Column("username", sa.Text, nullable=False),
    sa.Column("show_private", sa.Boolean, nullable=False, default=False),
    sa.Column("show_public", sa.Boolean, nullable=False, default=False),
    sa.Column("deleted", sa.Boolean, nullable=False, default=False),
)

_SETTINGS = sa.select(
    _github.c.user_id,
    _github.c.access_token,
    _github.c.username,
    _github.c.show_private,
    _github.c.show_public,
)


class NotFoundError(LookupError):
    """Raised when a requested record does not exist."""


@dataclass
class GitHubSettings:
    """A user's linked GitHub account; the access token is stored encrypted."""

    user_id: str
    access_token: str
    username: str
    show_private: bool = False
    show_public: bool = False


def _engine_for(url: str) -> sa.Engine:
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    parsed = sa.engine.make_url(url)
    if parsed.drivername.startswith("sqlite") and parsed.database in (None, "", ":memory:"):
        return sa.create_engine(
            parsed, poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
    return sa.create_engine(parsed, pool_pre_ping=True)


class Database:
    """A connection pool with the queries the services need."""

    def __init__(self, url: str) -> None:
        self._engine = _engine_for(url)
        try:
            with self._engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
        except Exception:
            self._engine.dispose()
            raise

    def create_schema(self) -> None:
        """Create the tables if they do not exist yet."""
        _metadata.create_all(self._engine)

    def _execute(self, stmt: Any) -> None:
        with self._engine.begin() as conn:
            conn.execute(stmt)

    def _upsert(self, table: sa.Table, values: dict[str, Any]) -> None:
        insert = postgresql.insert if self._engine.dialect.name == "postgresql" else sqlite.insert
        stmt = insert(table).values(**values)
        self._execute(stmt.on_conflict_do_update(
            index_elements=[table.c.user_id],
            set_={key: stmt.excluded[key] for key in values if key != "user_id"},
        ))

    def _scalar(self, query: sa.Select) -> Any:
        with self._engine.connect() as conn:
            return conn.execute(query).scalar_one_or_none()

    def _rows(self, query: sa.Select) -> list[Any]:
        with self._engine.connect() as conn:
            return conn.execute(query).all()

    def set_presence(self, user_id: str, presence: Presence) -> None:
        """Insert or replace a user's presence and stamp the update time."""
        self._upsert(_presences, {
            "user_id": user_id,
            "data": presence.to_dict(),
            "updated_at": datetime.now(timezone.utc),
        })

    def get_presence(self, user_id: str) -> Presence:
        """Return a user's presence or raise NotFoundError."""
        data = self._scalar(sa.select(_presences.c.data).where(_presences.c.user_id == user_id))
        if data is None:
            raise NotFoundError("presence not found")
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        return Presence.from_dict(data)

    def presence_updated_at(self, user_id: str) -> datetime:
        """Return when a user's presence was last written, in UTC."""
        stamp = self._scalar(
            sa.select(_presences.c.updated_at).where(_presences.c.user_id == user_id)
        )
        if stamp is None:
            raise NotFoundError("presence not found")
        return stamp if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)

    def delete_presence(self, user_id: str) -> None:
        """Remove a user's presence; a missing row is not an error."""
        self._execute(_presences.delete().where(_presences.c.user_id == user_id))

    def save_github_settings(self, settings: GitHubSettings) -> None:
        """Insert or replace a user's GitHub link and clear its deleted mark."""
        self._upsert(_github, {
            "user_id": settings.user_id,
            "access_token": settings.access_token,
            "username": settings.username,
            "show_private": settings.show_private,
            "show_public": settings.show_public,
            "deleted": False,
        })

    def get_github_settings(self, user_id: str) -> GitHubSettings:
        """Return a user's GitHub link, deleted or not, or raise NotFoundError."""
        rows = self._rows(_SETTINGS.where(_github.c.user_id == user_id))
        if not rows:
            raise NotFoundError("github settings not found")
        return GitHubSettings(*rows[0])

    def delete_github_settings(self, user_id: str) -> None:
        """Mark a user's GitHub link as deleted."""
        self._execute(_github.update().where(_github.c.user_id == user_id).values(deleted=True))

    def get_all_github_users(self) -> list[GitHubSettings]:
        """Return every GitHub link that is not marked deleted."""
        query = _SETTINGS.where(_github.c.deleted.is_(False)).order_by(_github.c.user_id)
        return [GitHubSettings(*row) for row in self._rows(query)]

    def count_github_users(self) -> int:
        """Count GitHub links that are not marked deleted."""
        return self._scalar(
            sa.select(sa.func.count()).select_from(_github).where(_github.c.deleted.is_(False))
        )

    def count_all_github_users(self) -> int:
        """Count every GitHub link ever saved."""
        return self._scalar(sa.select(sa.func.count()).select_from(_github))

    def get_all_tracked_user_ids(self) -> list[str]:
        """Return the ids of every user with a stored presence."""
        rows = self._rows(sa.select(_presences.c.user_id).order_by(_presences.c.user_id))
        return [row[0] for row in rows]

    def close(self) -> None:
        """Release every pooled connection."""
        self._engine.dispose()