import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import respx

from strelp.crypto import encrypt
from strelp.database import Database, GitHubSettings
from strelp.github import GitHubError, Poller, fetch_commit_message, validate_token
from strelp.models import Presence, User

EVENTS_URL = "https://api.github.com/users/octo/events"


@pytest.fixture
def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'strelp.db'}")
    database.create_schema()
    yield database
    database.close()


def _push(repo, private, head="abc123", created="2024-03-01T12:00:00Z"):
    return {
        "type": "PushEvent",
        "repo": {"name": repo, "private": private},
        "payload": {"head": head},
        "created_at": created,
    }


@pytest.mark.asyncio
async def test_poll_user_records_first_visible_push(db):
    db.set_presence("1", Presence(user=User(id="1")))
    events = [
        {"type": "WatchEvent", "repo": {"name": "octo/watched"}, "created_at": "2024-03-02T00:00:00Z"},
        _push("octo/hidden", True),
        _push("octo/shown", False),
    ]
    with respx.mock:
        events_route = respx.get(EVENTS_URL).mock(return_value=httpx.Response(200, json=events))
        respx.get("https://api.github.com/repos/octo/shown/commits/abc123").mock(
            return_value=httpx.Response(200, json={"commit": {"message": "Fix bug"}})
        )
        async with httpx.AsyncClient() as client:
            poller = Poller(db, "secret", client)
            assert await poller.poll_user("1", "octo", "token", False, True) is True
        request = events_route.calls.last.request
        assert request.headers["Authorization"] == "Bearer token"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"

    github = db.get_presence("1").github
    assert github.username == "octo"
    assert github.repo == "octo/shown"
    assert github.url == "https://github.com/octo/shown"
    assert github.private is False
    assert github.last_commit == "Fix bug"
    assert github.updated_at == int(datetime(2024, 3, 1, 12, tzinfo=timezone.utc).timestamp())


@pytest.mark.asyncio
async def test_poll_user_private_only(db):
    db.set_presence("1", Presence(user=User(id="1")))
    events = [_push("octo/public", False, head=""), _push("octo/secret-repo", True, head="")]
    with respx.mock:
        respx.get(EVENTS_URL).mock(return_value=httpx.Response(200, json=events))
        poller = Poller(db, "secret", httpx.AsyncClient())
        assert await poller.poll_user("1", "octo", "token", True, False) is True
    github = db.get_presence("1").github
    assert github.repo == "octo/secret-repo"
    assert github.private is True
    assert github.last_commit == ""


@pytest.mark.asyncio
async def test_poll_user_without_qualifying_push_leaves_presence(db):
    db.set_presence("1", Presence(user=User(id="1"), discord_status="idle"))
    with respx.mock:
        respx.get(EVENTS_URL).mock(
            return_value=httpx.Response(200, json=[_push("octo/hidden", True)])
        )
        poller = Poller(db, "secret", httpx.AsyncClient())
        assert await poller.poll_user("1", "octo", "token", False, True) is False
    stored = db.get_presence("1")
    assert stored.github is None
    assert stored.discord_status == "idle"


@pytest.mark.asyncio
async def test_poll_user_without_presence(db):
    with respx.mock:
        respx.get(EVENTS_URL).mock(return_value=httpx.Response(200, json=[_push("octo/a", False)]))
        poller = Poller(db, "secret", httpx.AsyncClient())
        assert await poller.poll_user("1", "octo", "token", True, True) is False
    assert db.get_all_tracked_user_ids() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [httpx.Response(500, json=[]), httpx.Response(200, text="not json"), httpx.Response(200, json={"a": 1})],
)
async def test_poll_user_bad_events_response(db, response):
    db.set_presence("1", Presence(user=User(id="1")))
    with respx.mock:
        respx.get(EVENTS_URL).mock(return_value=response)
        poller = Poller(db, "secret", httpx.AsyncClient())
        assert await poller.poll_user("1", "octo", "token", True, True) is False
    assert db.get_presence("1").github is None


@pytest.mark.asyncio
async def test_poll_user_keeps_push_when_commit_lookup_fails(db):
    db.set_presence("1", Presence(user=User(id="1")))
    with respx.mock:
        respx.get(EVENTS_URL).mock(return_value=httpx.Response(200, json=[_push("octo/a", False)]))
        respx.get("https://api.github.com/repos/octo/a/commits/abc123").mock(
            return_value=httpx.Response(404)
        )
        poller = Poller(db, "secret", httpx.AsyncClient())
        assert await poller.poll_user("1", "octo", "token", False, True) is True
    github = db.get_presence("1").github
    assert github.repo == "octo/a"
    assert github.last_commit == ""


@pytest.mark.asyncio
async def test_poll_all_skips_undecryptable_tokens(db):
    db.set_presence("1", Presence(user=User(id="1")))
    db.set_presence("2", Presence(user=User(id="2")))
    db.save_github_settings(GitHubSettings("1", encrypt("token", "secret"), "octo", False, True))
    db.save_github_settings(GitHubSettings("2", encrypt("token", "placeholder"), "ghost", False, True))
    with respx.mock:
        route = respx.get(EVENTS_URL).mock(
            return_value=httpx.Response(200, json=[_push("octo/a", False, head="")])
        )
        poller = Poller(db, "secret", httpx.AsyncClient())
        assert await poller.poll_all() == 1
        assert route.calls.last.request.headers["Authorization"] == "Bearer token"
    assert db.get_presence("1").github.repo == "octo/a"
    assert db.get_presence("2").github is None


@pytest.mark.asyncio
async def test_start_polls_once_when_stopped(db):
    db.set_presence("1", Presence(user=User(id="1")))
    db.save_github_settings(GitHubSettings("1", encrypt("token", "secret"), "octo", False, True))
    stop = asyncio.Event()
    stop.set()
    with respx.mock:
        route = respx.get(EVENTS_URL).mock(return_value=httpx.Response(200, json=[]))
        await Poller(db, "secret", httpx.AsyncClient()).start(stop)
        assert route.call_count == 1


@pytest.mark.asyncio
async def test_fetch_commit_message():
    with respx.mock:
        route = respx.get("https://api.github.com/repos/octo/a/commits/abc123").mock(
            return_value=httpx.Response(200, json={"commit": {"message": "Add tests"}})
        )
        async with httpx.AsyncClient() as client:
            message = await fetch_commit_message(client, "token", "octo/a", "abc123")
        assert route.calls.last.request.headers["Accept"] == "application/vnd.github+json"
    assert message == "Add tests"


@pytest.mark.asyncio
async def test_fetch_commit_message_errors():
    with pytest.raises(GitHubError, match="sha is empty"):
        await fetch_commit_message(None, "token", "octo/a", "")
    with respx.mock:
        respx.get("https://api.github.com/repos/octo/a/commits/abc123").mock(
            return_value=httpx.Response(404)
        )
        with pytest.raises(GitHubError, match="status was 404"):
            await fetch_commit_message(httpx.AsyncClient(), "token", "octo/a", "abc123")


@pytest.mark.asyncio
async def test_validate_token_returns_login():
    with respx.mock:
        route = respx.get("https://api.github.com/user").mock(
            return_value=httpx.Response(200, json={"login": "octo"})
        )
        assert await validate_token("token", httpx.AsyncClient()) == "octo"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer token"
        assert "X-GitHub-Api-Version" not in request.headers


@pytest.mark.asyncio
async def test_validate_token_rejected():
    with respx.mock:
        respx.get("https://api.github.com/user").mock(return_value=httpx.Response(401))
        with pytest.raises(GitHubError, match=r"invalid token \(status 401\)"):
            await validate_token("token", httpx.AsyncClient())


@pytest.mark.asyncio
async def test_validate_token_network_failure():
    with respx.mock:
        respx.get("https://api.github.com/user").mock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(GitHubError, match="request failed"):
            await validate_token("token", httpx.AsyncClient())