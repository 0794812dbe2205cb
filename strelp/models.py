"""Presence records as stored in the database and served by the API."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any


def _build(cls: type, data: Any) -> Any:
    """Build a flat dataclass, keeping only values of each field's own type."""
    data = data if isinstance(data, dict) else {}
    return cls(**{
        f.name: data[f.name]
        for f in fields(cls)
        if type(data.get(f.name)) is type(f.default)
    })


def _drop_empty(mapping: dict[str, Any], *keys: str) -> None:
    for key in keys:
        if not mapping.get(key):
            mapping.pop(key, None)


@dataclass
class Badge:
    id: str = ""
    icon_url: str = ""


@dataclass
class User:
    id: str = ""
    username: str = ""
    global_name: str = ""
    avatar: str = ""
    decoration: str = ""


@dataclass
class Spotify:
    track: str = ""
    artist: str = ""
    album: str = ""
    album_art: str = ""
    start: int = 0
    end: int = 0


@dataclass
class GitHub:
    username: str = ""
    last_commit: str = ""
    repo: str = ""
    url: str = ""
    private: bool = False
    updated_at: int = 0


@dataclass
class Activity:
    name: str = ""
    type: int = 0
    state: str = ""
    details: str = ""
    emoji: str = ""
    created_at: int = 0


@dataclass
class Devices:
    desktop: bool = False
    mobile: bool = False
    web: bool = False


@dataclass
class Presence:
    """Everything the API reports about one tracked user."""

    user: User = field(default_factory=User)
    discord_status: str = ""
    activities: list[Activity] = field(default_factory=list)
    spotify: Spotify | None = None
    github: GitHub | None = None
    badges: list[Badge] = field(default_factory=list)
    nameplate: str = ""
    clan_tag: str = ""
    devices: Devices = field(default_factory=Devices)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready mapping without empty optional fields."""
        out = asdict(self)
        _drop_empty(out["user"], "decoration")
        for activity in out["activities"]:
            _drop_empty(activity, "state", "details", "emoji")
        _drop_empty(out, "spotify", "github", "badges", "nameplate", "clan_tag")
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Presence:
        """Build a presence from a decoded JSON object."""
        if not isinstance(data, dict):
            raise ValueError("presence must be a JSON object")
        spotify, github = data.get("spotify"), data.get("github")
        text = lambda key: data[key] if isinstance(data.get(key), str) else ""  # noqa: E731
        items = lambda kind, key: [  # noqa: E731
            _build(kind, item) for item in data.get(key) or [] if isinstance(item, dict)
        ]
        return cls(
            user=_build(User, data.get("user")),
            discord_status=text("discord_status"),
            activities=items(Activity, "activities"),
            spotify=_build(Spotify, spotify) if isinstance(spotify, dict) else None,
            github=_build(GitHub, github) if isinstance(github, dict) else None,
            badges=items(Badge, "badges"),
            nameplate=text("nameplate"),
            clan_tag=text("clan_tag"),
            devices=_build(Devices, data.get("devices")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | bytes) -> Presence:
        return cls.from_dict(json.loads(text))