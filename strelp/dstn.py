"""Client for the public profile service that exposes badges and collectibles."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

PROFILE_URL = "https://dcdn.dstn.to/profile/{user_id}"
CACHE_DURATION = 5 * 60.0

_cache: dict[str, tuple[float, "DstnProfile"]] = {}


class ProfileError(Exception):
    """Raised when a profile cannot be fetched or decoded."""


@dataclass(frozen=True)
class ProfileBadge:
    id: str = ""
    icon: str = ""


def _get(data: Any, key: str, kind: type = dict) -> Any:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, kind) else kind()


@dataclass(frozen=True)
class DstnProfile:
    """The parts of a profile the bot uses."""

    bio: str = ""
    clan_tag: str = ""
    nameplate: str = ""
    badges: tuple[ProfileBadge, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DstnProfile:
        if not isinstance(data, dict):
            raise ProfileError("profile must be a JSON object")
        user = _get(data, "user")
        return cls(
            bio=_get(user, "bio", str),
            clan_tag=_get(_get(user, "clan"), "tag", str),
            nameplate=_get(_get(_get(user, "collectibles"), "nameplate"), "asset", str),
            badges=tuple(
                ProfileBadge(id=_get(item, "id", str), icon=_get(item, "icon", str))
                for item in data.get("badges") or []
                if isinstance(item, dict)
            ),
        )


def clear_cache() -> None:
    _cache.clear()


async def fetch_profile(user_id: str, client: httpx.AsyncClient | None = None) -> DstnProfile:
    """Return a user's profile, from a five-minute cache when fresh."""
    cached = _cache.get(user_id)
    if cached and time.monotonic() - cached[0] < CACHE_DURATION:
        return cached[1]

    http = client or httpx.AsyncClient()
    try:
        response = await http.get(PROFILE_URL.format(user_id=user_id))
    except httpx.HTTPError as exc:
        raise ProfileError(str(exc)) from exc
    finally:
        if client is None:
            await http.aclose()
    if response.status_code != 200:
        raise ProfileError(f"dstn status: {response.status_code}")
    try:
        profile = DstnProfile.from_dict(response.json())
    except ValueError as exc:
        raise ProfileError(f"invalid profile document: {exc}") from exc

    _cache[user_id] = (time.monotonic(), profile)
    return profile