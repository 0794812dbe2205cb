"""Polling of GitHub for the latest push of every linked account."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError

from strelp.crypto import DecryptionError, decrypt
from strelp.database import Database, NotFoundError
from strelp.models import GitHub

API_ROOT = "https://api.github.com"
POLL_INTERVAL = 5 * 60.0

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

log = logging.getLogger(__name__)


class GitHubError(Exception):
    """Raised when a GitHub request fails or returns something unusable."""


def _headers(token: str, versioned: bool = True) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {token}", "Accept": "application/vnd.github+json"}
    if versioned:
        headers["X-GitHub-Api-Version"] = "2022-11-28"
    return headers


def _get(data: Any, key: str, kind: type = dict) -> Any:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, kind) else kind()


async def _fetch_json(
    client: httpx.AsyncClient | None, url: str, headers: dict[str, str], failure: str
) -> Any:
    """GET a URL and decode its JSON body, raising GitHubError on any failure."""
    http = client or httpx.AsyncClient()
    try:
        response = await http.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise GitHubError(f"{failure}{exc}") from exc
    finally:
        if client is None:
            await http.aclose()
    if response.status_code != 200:
        return response.status_code, None
    try:
        return 200, response.json()
    except ValueError as exc:
        raise GitHubError(f"invalid JSON document: {exc}") from exc


async def fetch_commit_message(
    client: httpx.AsyncClient | None, token: str, repo: str, sha: str
) -> str:
    """Return the message of one commit in a repository."""
    if not sha:
        raise GitHubError("sha is empty")
    status, data = await _fetch_json(
        client, f"{API_ROOT}/repos/{repo}/commits/{sha}", _headers(token), ""
    )
    if status != 200:
        raise GitHubError(f"status was {status}")
    return _get(_get(data, "commit"), "message", str)


async def validate_token(token: str, client: httpx.AsyncClient | None = None) -> str:
    """Check an access token and return the login of the account it belongs to."""
    status, data = await _fetch_json(
        client, f"{API_ROOT}/user", _headers(token, versioned=False), "request failed: "
    )
    if status != 200:
        raise GitHubError(f"invalid token (status {status})")
    return _get(data, "login", str)


def _parse_event(item: Any) -> tuple[str, str, bool, str, datetime]:
    """Return type, repo name, privacy, head sha and creation time of an event."""
    if not isinstance(item, dict):
        raise ValueError("event must be a JSON object")
    repo = _get(item, "repo")
    created = item.get("created_at")
    moment = _ZERO_TIME if created is None else datetime.fromisoformat(created)
    if moment.tzinfo is None:
        raise ValueError(f"created_at has no time zone: {created!r}")
    return (
        _get(item, "type", str),
        _get(repo, "name", str),
        repo.get("private") is True,
        _get(_get(item, "payload"), "head", str),
        moment,
    )


class Poller:
    """Copies each linked account's latest visible push into its presence."""

    def __init__(
        self, db: Database, encryption_key: str, client: httpx.AsyncClient | None = None
    ) -> None:
        self.db = db
        self.encryption_key = encryption_key
        self.client = client
        self.interval = POLL_INTERVAL

    async def start(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll now and then every interval until the stop event is set."""
        stop = stop_event or asyncio.Event()
        while True:
            await self.poll_all()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass

    async def poll_all(self) -> int:
        """Poll every linked account; return how many presences were updated."""
        try:
            users = await asyncio.to_thread(self.db.get_all_github_users)
        except SQLAlchemyError as exc:
            log.error("[GitHub] Failed to fetch GitHub users: %s", exc)
            return 0

        log.info("[GitHub] Polling %d user(s)", len(users))
        updated = 0
        for s in users:
            try:
                token = decrypt(s.access_token, self.encryption_key)
            except DecryptionError as exc:
                log.error("[GitHub] Failed to decrypt token for %s: %s", s.user_id, exc)
                continue
            updated += await self.poll_user(
                s.user_id, s.username, token, s.show_private, s.show_public
            )
        return updated

    async def poll_user(
        self, user_id: str, gh_username: str, token: str, show_private: bool, show_public: bool
    ) -> bool:
        """Poll one account; return whether its presence was updated."""
        url = f"{API_ROOT}/users/{gh_username}/events"
        try:
            status, data = await _fetch_json(self.client, url, _headers(token), "")
        except GitHubError as exc:
            log.warning("[GitHub] HTTP error for %s: %s", gh_username, exc)
            return False
        if status != 200:
            log.warning("[GitHub] Non-200 response for %s: %d", gh_username, status)
            return False
        try:
            if not isinstance(data, list):
                raise ValueError("events must be a JSON array")
            events = [_parse_event(item) for item in data if item is not None]
        except (TypeError, ValueError) as exc:
            log.warning("[GitHub] Failed to unmarshal events for %s: %s", gh_username, exc)
            return False

        log.info("[GitHub] Fetched %d events for %s", len(events), gh_username)

        try:
            presence = await asyncio.to_thread(self.db.get_presence, user_id)
        except (NotFoundError, SQLAlchemyError, ValueError) as exc:
            log.warning("[GitHub] Failed to fetch presence for %s: %s", user_id, exc)
            return False

        event = next(
            (
                e for e in events
                if e[0] == "PushEvent" and (show_private if e[2] else show_public)
            ),
            None,
        )
        if event is None:
            log.info("[GitHub] No qualifying PushEvent found in recent events for %s", gh_username)
            return False

        _, repo, private, head, created_at = event
        github = GitHub(
            username=gh_username,
            repo=repo,
            url=f"https://github.com/{repo}",
            private=private,
            updated_at=(created_at - _EPOCH) // timedelta(seconds=1),
        )
        if head:
            try:
                github.last_commit = await fetch_commit_message(self.client, token, repo, head)
            except GitHubError as exc:
                log.warning("[GitHub] Failed to fetch commit message for %s: %s", gh_username, exc)

        presence.github = github
        try:
            await asyncio.to_thread(self.db.set_presence, user_id, presence)
        except SQLAlchemyError as exc:
            log.error("[GitHub] Failed to save presence for %s: %s", user_id, exc)
            return False
        log.info("[GitHub] Success: Updated presence with PushEvent for %s", gh_username)
        return True