"""Slash command definitions and the messages the bot answers them with."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from typing import Any

DEFAULT_API_DOMAIN = "strelp-api-production.up.railway.app"

RESPONSE_CHANNEL_MESSAGE = 4
RESPONSE_DEFERRED_CHANNEL_MESSAGE = 5
FLAG_EPHEMERAL = 1 << 6
OPTION_STRING = 3

RED, GREEN, YELLOW, BLURPLE, GITHUB_GREEN = 0xED4245, 0x57F287, 0xFEE75C, 0x5865F2, 0x238636

Embed = dict[str, Any]


def _embed(title: str, description: str, color: int, *fields: tuple[str, str]) -> Embed:
    embed: Embed = {"title": title, "description": description, "color": color}
    if fields:
        embed["fields"] = [{"name": name, "value": value} for name, value in fields]
    return embed


def api_domain(env: Mapping[str, str] | None = None) -> str:
    """Return the public host name the API is reachable at."""
    env = os.environ if env is None else env
    return env.get("RAILWAY_PUBLIC_DOMAIN") or DEFAULT_API_DOMAIN


def command_definitions() -> list[dict[str, Any]]:
    """Return the slash commands the bot registers."""
    simple = {
        "start": "Start tracking your presence and enable your Strelp API",
        "stop": "Stop tracking your presence and delete your Strelp data",
        "ws": "Learn how to use WebSockets for real-time data",
    }
    commands: list[dict[str, Any]] = [{"name": n, "description": d} for n, d in simple.items()]
    commands.append({
        "name": "git",
        "description": "Connect your GitHub account to show your latest commits in your presence",
        "options": [
            {"type": OPTION_STRING, "name": "token", "required": True,
             "description": "Your GitHub Personal Access Token (keep this private)"},
            {"type": OPTION_STRING, "name": "visibility", "required": True,
             "description": "Which repos to show in your presence",
             "choices": [
                 {"name": "Public repos only", "value": "public"},
                 {"name": "Private repos only", "value": "private"},
                 {"name": "Both public and private", "value": "both"},
             ]},
        ],
    })
    commands.append({"name": "gitstop",
                     "description": "Disconnect your GitHub account and stop showing commit data"})
    commands.append({"name": "sync",
                     "description": "Sync all tracked users presence to the latest version (Staff Only)"})
    return commands


def ephemeral_response(embeds: Iterable[Embed]) -> dict[str, Any]:
    """Wrap embeds in a reply only the invoking user can see."""
    return {"type": RESPONSE_CHANNEL_MESSAGE,
            "data": {"embeds": list(embeds), "flags": FLAG_EPHEMERAL}}


def deferred_ephemeral_response() -> dict[str, Any]:
    """Acknowledge an interaction now and send the private reply later."""
    return {"type": RESPONSE_DEFERRED_CHANNEL_MESSAGE, "data": {"flags": FLAG_EPHEMERAL}}


def error_embed(title: str, description: str) -> Embed:
    return _embed(title, description, RED)


def start_embed(domain: str, user_id: str) -> Embed:
    return _embed(
        "Tracking Started",
        "Your presence is now live. Use the endpoint below to fetch your real-time "
        "Discord status from anywhere.\n\n**Your endpoint:**\n"
        f"`https://{domain}/v1/presence/{user_id}`",
        GREEN,
        ("Fetch — JavaScript",
         f"```js\nfetch('https://{domain}/v1/presence/{user_id}')\n"
         "  .then(res => res.json())\n  .then(data => {\n"
         "    console.log(data.discord_status);\n"
         "    console.log(data.user.global_name);\n"
         "    console.log(data.activities);\n  });\n```"),
        ("WebSocket — Real-time Updates",
         "For instant updates without polling, connect to the WebSocket endpoint:\n"
         f"`wss://{domain}/v1/presence/{user_id}/ws`\nRun `/ws` for a full example."),
        ("Response Fields",
         "`discord_status` — online / idle / dnd / offline\n"
         "`user` — id, username, global_name, avatar URL\n"
         "`activities` — current games or activities\n"
         "`spotify` — track, artist, album, album art, timestamps\n"
         "`github` — latest commit, repo, URL\n"
         "`badges` — id and icon_url for each badge\n"
         "`devices` — desktop, mobile, web (boolean)"),
        ("Troubleshooting",
         "**404 Not Found** — Run `/start` first. Your data only exists while "
         "tracking is active.\n**Stale data** — Presence updates are pushed by "
         "Discord in real-time. If your status looks wrong, change it on Discord "
         "and it will refresh automatically."),
    )


def stop_embed() -> Embed:
    return _embed(
        "Tracking Stopped",
        "Your presence data has been removed from the database. Your API endpoint will "
        "return 404 until you run `/start` again.\n\nYour GitHub connection, if any, has "
        "not been removed — use `/gitstop` to disconnect that separately.",
        YELLOW,
    )


def ws_embed(domain: str, user_id: str) -> Embed:
    return _embed(
        "Real-Time Presence via WebSocket",
        "WebSockets push updates to your app the instant your Discord status changes — "
        "no polling required.\n\n**Your WebSocket URL:**\n"
        f"`wss://{domain}/v1/presence/{user_id}/ws`",
        BLURPLE,
        ("JavaScript Example",
         f"```js\nconst ws = new WebSocket('wss://{domain}/v1/presence/{user_id}/ws');\n\n"
         "ws.onopen = () => {\n  console.log('Connected');\n};\n\n"
         "ws.onmessage = (event) => {\n  const data = JSON.parse(event.data);\n"
         "  // data is the full presence object\n"
         "  console.log(data.discord_status);\n"
         "  console.log(data.spotify?.track);\n};\n\n"
         "ws.onclose = () => {\n  // reconnect after a delay\n"
         "  setTimeout(() => location.reload(), 3000);\n};\n```"),
        ("Behaviour",
         "The server sends the full presence object immediately on connect, then "
         "pushes a new payload every time your status or activity changes. There is "
         "no need to send any messages to the server."),
        ("Troubleshooting",
         "**Connection closes instantly** — Make sure the URL uses `wss://` not "
         "`https://`. Confirm `/start` has been run.\n**No initial message** — "
         "Register your `onmessage` handler before the connection opens.\n"
         "**Reconnection** — The server will close idle or errored connections. "
         "Add a reconnect loop in your client."),
    )


def git_invalid_embed(error: object) -> Embed:
    return _embed(
        "Invalid GitHub Token",
        f"Could not authenticate with the token you provided.\n\n**Error:** {error}",
        RED,
        ("How to create a token",
         "Go to **GitHub → Settings → Developer settings → Personal access tokens** "
         "and generate a new token. For Classic PATs, enable the `repo` and "
         "`read:user` scopes. For Fine-Grained PATs, grant Read-only access to "
         "Contents and Metadata."),
    )


def git_connected_embed(username: str, visibility: str) -> Embed:
    return _embed(
        "GitHub Connected",
        f"Your GitHub account **{username}** is now linked. Commit data will appear in "
        "your API presence within 5 minutes and will update every 5 minutes after that.",
        GITHUB_GREEN,
        ("Visibility Setting",
         f"Currently set to show **{visibility}** repositories. You can change this "
         "at any time by running `/git` again with a different visibility option."),
        ("What appears in the API",
         "The `github` field in your presence will contain:\n"
         "`username` — your GitHub username\n"
         "`last_commit` — the message of your most recent commit\n"
         "`repo` — the repository it was pushed to\n"
         "`url` — a direct link to the commit\n"
         "`private` — whether the repo is private\n"
         "`updated_at` — Unix timestamp of the commit"),
        ("Security",
         "Your token is encrypted with AES-256-GCM before being stored. It is never "
         "logged, cached in plaintext, or returned by the API. Run `/gitstop` at any "
         "time to revoke access and purge your data."),
    )


def gitstop_embed() -> Embed:
    return _embed(
        "GitHub Disconnected",
        "Your GitHub account has been unlinked. Your encrypted token and all commit data "
        "have been permanently deleted from the database.\n\nThe `github` field will no "
        "longer appear in your API response. Your presence tracking via `/start` is still "
        "active.",
        YELLOW,
    )


def access_denied_embed() -> Embed:
    return error_embed(
        "Access Denied",
        "You do not have a role that is permitted to run `/sync`. Contact a server admin "
        "if you believe this is a mistake.",
    )


def sync_complete_embed(count: int) -> Embed:
    return _embed(
        "Sync Complete",
        f"Successfully synced **{count}** tracked users to the latest version.\n\n"
        "Badges, nameplates, clan tags, and profile data have all been refreshed.",
        GREEN,
    )