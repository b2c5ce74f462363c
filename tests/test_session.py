import asyncio
import io
from datetime import timedelta

import httpx
import jwt
import pytest
import pytest_asyncio
from PIL import Image

from app.client.api import SocialApi
from app.client.session import STALE_RESPONSE, SessionManager, token_expired
from app.client.state import AuthStatus
from app.client.token_store import FileTokenStore, MemoryTokenStore
from app.utils.security import issue_token
from main import app


@pytest.fixture
def redirects():
    return []


@pytest_asyncio.fixture
async def make_session(client, redirects):
    # ``client`` installs the test database override for the app
    sessions = []

    def _make_session(token=None, transport=None):
        session = SessionManager(
            base_url="http://test/api",
            token_store=MemoryTokenStore(token),
            on_unauthorized=redirects.append,
            transport=transport or httpx.ASGITransport(app=app),
        )
        sessions.append(session)
        return session

    yield _make_session
    for session in sessions:
        await session.aclose()


def test_token_expired_reads_exp_without_secret():
    fresh = jwt.encode({"sub": "1", "exp": 4102444800}, "some-other-signing-secret-value-0123456789", algorithm="HS256")
    stale = jwt.encode({"sub": "1", "exp": 1000}, "some-other-signing-secret-value-0123456789", algorithm="HS256")

    assert token_expired(fresh) is False
    assert token_expired(stale) is True
    assert token_expired("garbage") is True


async def test_login_success(make_session, make_user):
    await make_user("alice")
    session = make_session()

    result = await session.login("alice@x.com", "password123")

    state = session.get_state()
    assert result.success is True
    assert state.status == AuthStatus.AUTHENTICATED
    assert state.user["username"] == "alice"
    assert session.token_store.get() == state.token


async def test_login_failure_keeps_server_message(make_session, make_user):
    await make_user("alice")
    session = make_session()

    result = await session.login("alice@x.com", "wrong-password")

    state = session.get_state()
    assert result.success is False
    assert result.error == "Invalid credentials"
    assert state.status == AuthStatus.ANONYMOUS
    assert state.error == "Invalid credentials"
    assert session.token_store.get() is None


async def test_register_then_logout_twice(make_session):
    session = make_session()

    result = await session.register({
        "username": "newbie",
        "email": "newbie@x.com",
        "password": "secret1",
        "firstName": "New",
        "lastName": "Bie",
    })
    first = session.logout()
    second = session.logout()

    assert result.success is True
    assert first.status == second.status == AuthStatus.ANONYMOUS
    assert session.token_store.get() is None


async def test_initialize_without_token(make_session):
    session = make_session()

    state = await session.initialize()

    assert state.status == AuthStatus.ANONYMOUS
    assert state.loading is False


async def test_initialize_discards_expired_token(make_session, make_user):
    user = await make_user("alice")
    session = make_session(issue_token(user.id, user.role, expires_delta=timedelta(seconds=-1)))

    state = await session.initialize()

    assert state.status == AuthStatus.ANONYMOUS
    assert session.token_store.get() is None


async def test_initialize_restores_valid_token(make_session, make_user):
    user = await make_user("alice")
    session = make_session(issue_token(user.id, user.role))

    state = await session.initialize()

    assert state.status == AuthStatus.AUTHENTICATED
    assert state.user["id"] == user.id


async def test_any_401_signs_out_and_redirects(make_session, make_user, redirects):
    await make_user("alice")
    session = make_session()
    await session.login("alice@x.com", "password123")
    session.token_store.set("not-a-token")
    api = SocialApi(session)

    result = await api.follow(12345)

    assert result.success is False
    assert result.error == "Invalid token"
    assert redirects == ["/login"]
    assert session.get_state().status == AuthStatus.ANONYMOUS
    assert session.token_store.get() is None


async def test_failed_profile_update_leaves_state(make_session, make_user):
    await make_user("alice")
    await make_user("bob")
    session = make_session()
    await session.login("alice@x.com", "password123")
    before = session.get_state()

    failed = await session.update_profile({"email": "bob@x.com"})
    updated = await session.update_profile({"bio": "hello"})

    assert failed.success is False
    assert failed.error == "Email already exists"
    assert updated.success is True
    assert session.get_state().user["bio"] == "hello"
    assert before.user["bio"] is None


async def test_social_api_round_trip(make_session, make_user):
    await make_user("alice")
    bob = await make_user("bob")
    session = make_session()
    await session.login("alice@x.com", "password123")
    api = SocialApi(session)

    created = await api.create_post("first post")
    liked = await api.like(created.data["id"])
    followed = await api.follow(bob.id)
    suggestions = await api.suggestions()

    assert created.success is True
    assert liked.data["likeCount"] == 1
    assert followed.success is True
    assert [s["isFollowing"] for s in suggestions.data] == [True]


async def test_duplicate_in_flight_request_is_skipped(make_session, make_user):
    await make_user("alice")
    session = make_session()
    await session.login("alice@x.com", "password123")
    api = SocialApi(session)
    post_id = (await api.create_post("click me")).data["id"]

    first, second = await asyncio.gather(api.like(post_id), api.unlike(post_id))

    assert first.success is True
    assert second.skipped is True
    assert second.error == "Request already in progress"
    assert not api.is_pending("like", post_id)


async def test_failure_without_message_uses_fallback():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    async with SessionManager(base_url="http://test/api", transport=httpx.MockTransport(handler)) as session:
        result = await SocialApi(session).like(1)

    assert result.success is False
    assert result.error == "Failed to like post. Please try again."


def test_file_token_store(tmp_path):
    store = FileTokenStore(tmp_path / "nested" / "token")

    assert store.get() is None
    store.set("abc")
    assert store.get() == "abc"
    assert (tmp_path / "nested" / "token").stat().st_mode & 0o777 == 0o600
    store.clear()
    store.clear()
    assert store.get() is None


class HeldTransport(httpx.AsyncBaseTransport):
    """Lets the app answer, then holds the response until ``release`` is called."""

    def __init__(self, inner):
        self.inner = inner
        self.arrived = asyncio.Event()
        self._gate = asyncio.Event()
        self._gate.set()

    def hold(self):
        self.arrived.clear()
        self._gate.clear()

    def release(self):
        self._gate.set()

    async def handle_async_request(self, request):
        response = await self.inner.handle_async_request(request)
        if not self._gate.is_set():
            self.arrived.set()
            await self._gate.wait()
        return response


@pytest_asyncio.fixture
async def held():
    return HeldTransport(httpx.ASGITransport(app=app))


async def test_profile_reply_after_logout_is_dropped(make_session, make_user, held):
    await make_user("alice")
    session = make_session(transport=held)
    await session.login("alice@x.com", "password123")

    held.hold()
    pending = asyncio.create_task(session.update_profile({"bio": "late"}))
    await held.arrived.wait()
    session.logout()
    held.release()
    result = await pending

    state = session.get_state()
    assert result.success is False
    assert result.error == STALE_RESPONSE
    assert state.status == AuthStatus.ANONYMOUS
    assert state.user is None
    assert state.token is None


async def test_login_reply_after_logout_is_dropped(make_session, make_user, held):
    await make_user("alice")
    session = make_session(transport=held)

    held.hold()
    pending = asyncio.create_task(session.login("alice@x.com", "password123"))
    await held.arrived.wait()
    session.logout()
    held.release()
    result = await pending

    assert result.success is False
    assert session.get_state().status == AuthStatus.ANONYMOUS
    assert session.token_store.get() is None


async def test_restore_reply_after_logout_is_dropped(make_session, make_user, held):
    user = await make_user("alice")
    session = make_session(issue_token(user.id, user.role), transport=held)

    held.hold()
    pending = asyncio.create_task(session.initialize())
    await held.arrived.wait()
    session.logout()
    held.release()
    state = await pending

    assert state.status == AuthStatus.ANONYMOUS
    assert session.token_store.get() is None


async def test_concurrent_logins_apply_in_call_order(make_session, make_user):
    await make_user("alice")
    await make_user("bob")
    session = make_session()

    first, second = await asyncio.gather(
        session.login("alice@x.com", "password123"),
        session.login("bob@x.com", "password123"),
    )

    state = session.get_state()
    assert first.success and second.success
    assert state.user["username"] == "bob"
    assert session.token_store.get() == state.token


async def test_login_then_logout_in_sequence_stays_signed_out(make_session, make_user):
    await make_user("alice")
    session = make_session()

    await session.login("alice@x.com", "password123")
    session.logout()
    late_update = await session.update_profile({"bio": "after logout"})

    # no token is sent, so the server rejects it and nothing is restored
    assert late_update.success is False
    assert session.get_state().status == AuthStatus.ANONYMOUS


async def test_profile_photo_goes_through_multipart(make_session, make_user):
    await make_user("alice")
    session = make_session()
    await session.login("alice@x.com", "password123")
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="PNG")

    result = await session.update_profile(
        {"bio": "with photo", "about": None}, photo=buffer.getvalue(), content_type="image/png"
    )

    user = session.get_state().user
    assert result.success is True
    assert user["hasPhoto"] is True
    assert user["bio"] == "with photo"


async def test_unreadable_success_body_is_a_failed_result():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    async with SessionManager(base_url="http://test/api", transport=httpx.MockTransport(handler)) as session:
        login = await session.login("alice@x.com", "password123")
        profile = await session.update_profile({"bio": "x"})

    assert login.success is False
    assert login.error == "Login failed"
    assert session.get_state().error == "Login failed"
    assert profile.success is False
    assert profile.error == "Profile update failed"


async def test_missing_token_in_reply_is_a_failed_result():
    def handler(request):
        return httpx.Response(200, json={"success": True})

    async with SessionManager(base_url="http://test/api", transport=httpx.MockTransport(handler)) as session:
        result = await session.register({"email": "a@x.com"})

    assert result.success is False
    assert result.error == "Registration failed"
    assert session.get_state().status == AuthStatus.ANONYMOUS
