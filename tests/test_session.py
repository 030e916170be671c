from urllib.parse import parse_qs

import httpx
import pytest

from bmkg_weather.session import BMKGAuth, SessionError, SessionState, parse_set_cookie

BASE_URL = "https://aws.test"
DATA_URL = f"{BASE_URL}/monitoring/aws/STA0001/json"


class FakePortal:
    """In-memory AWS Center: hands out sessions and serves one station"""

    def __init__(self, session_cookie=True, data_responses=None):
        self.session_cookie = session_cookie
        self.data_responses = list(data_responses or [])
        self.sessions_issued = 0
        self.logins = []
        self.data_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if request.method == "GET" and path == "/":
            self.sessions_issued += 1
            headers = {}
            if self.session_cookie:
                headers["set-cookie"] = f"PHPSESSID=sess{self.sessions_issued}; path=/; HttpOnly"
            return httpx.Response(200, headers=headers, text="<html>login</html>")

        if request.method == "POST" and path == "/base/verify":
            self.logins.append(
                {"form": parse_qs(request.content.decode()), "cookie": request.headers.get("cookie")}
            )
            return httpx.Response(200, text="ok")

        if path == "/base/login":
            return httpx.Response(200, text="<html>login</html>")

        if path == "/dashboard":
            if "sess" in (request.headers.get("cookie") or ""):
                return httpx.Response(200, text="dashboard")
            return httpx.Response(302, headers={"location": f"{BASE_URL}/base/login"})

        if path == "/monitoring/aws/STA0001/json":
            self.data_requests.append(request.headers.get("cookie"))
            outcome = self.data_responses.pop(0) if self.data_responses else "ok"
            if outcome == "expired":
                return httpx.Response(401)
            if outcome == "redirect":
                return httpx.Response(302, headers={"location": f"{BASE_URL}/base/login"})
            if outcome == "error":
                raise httpx.ConnectError("connection reset", request=request)
            if outcome == "server_error":
                return httpx.Response(500)
            return httpx.Response(200, json={"id_station": "STA0001", "tt_air_avg": "27.1"})

        return httpx.Response(404)


def make_auth(portal):
    client = httpx.AsyncClient(transport=httpx.MockTransport(portal))
    return BMKGAuth(username="user", password="pass", base_url=BASE_URL, client=client)


def test_parse_set_cookie():
    assert parse_set_cookie("PHPSESSID=abc123; path=/; HttpOnly") == {"PHPSESSID": "abc123"}
    folded = "PHPSESSID=abc; path=/, lang=id; Expires=Wed, 21 Oct 2026 07:28:00 GMT, ci_session=x.y-z"
    assert parse_set_cookie(folded) == {"PHPSESSID": "abc", "lang": "id", "ci_session": "x.y-z"}
    assert parse_set_cookie("broken") == {}


def test_session_state_transitions():
    state = SessionState()
    updated = state.with_set_cookie(["PHPSESSID=one; path=/", "lang=id"])

    assert state.cookies == {}
    assert updated.session_token == "one"
    assert updated.cookie_header() == "PHPSESSID=one; lang=id"
    assert updated.authenticated(True).is_authenticated
    assert not updated.authenticated(True).expired().is_authenticated
    # A later header without the session cookie keeps the token
    assert updated.with_set_cookie(["other=1"]).session_token == "one"


@pytest.mark.asyncio
async def test_initial_session_and_login():
    portal = FakePortal()
    auth = make_auth(portal)

    initial = await auth.get_initial_session()
    assert initial.success
    assert initial.session_token == "sess1"
    assert not auth.is_authenticated

    result = await auth.login()
    assert result.success
    assert auth.is_authenticated
    assert portal.logins[0]["form"] == {"username": ["user"], "password": ["pass"], "captcha": ["3"]}
    assert portal.logins[0]["cookie"] == "PHPSESSID=sess1"


@pytest.mark.asyncio
async def test_login_requires_session_token():
    auth = make_auth(FakePortal())
    with pytest.raises(SessionError):
        await auth.login()


@pytest.mark.asyncio
async def test_authenticate_without_session_cookie():
    portal = FakePortal(session_cookie=False)
    auth = make_auth(portal)

    assert await auth.authenticate() is False
    assert not auth.is_authenticated
    assert portal.logins == []


@pytest.mark.asyncio
async def test_initial_session_network_failure():
    def unreachable(request):
        raise httpx.ConnectError("no route to host", request=request)

    auth = BMKGAuth("user", "pass", BASE_URL, client=httpx.AsyncClient(transport=httpx.MockTransport(unreachable)))
    result = await auth.get_initial_session()

    assert not result.success
    assert result.status == 0
    assert await auth.authenticate() is False


@pytest.mark.asyncio
async def test_fetch_with_session_requires_authentication():
    auth = make_auth(FakePortal())
    with pytest.raises(SessionError):
        await auth.fetch_with_session(DATA_URL)


@pytest.mark.asyncio
async def test_fetch_with_session_sends_cookie():
    portal = FakePortal()
    auth = make_auth(portal)
    assert await auth.authenticate()

    response = await auth.fetch_with_session(DATA_URL)

    assert response.status_code == 200
    assert response.json()["tt_air_avg"] == "27.1"
    assert portal.data_requests == ["PHPSESSID=sess1"]


@pytest.mark.asyncio
@pytest.mark.parametrize("expiry", ["expired", "redirect"])
async def test_expired_session_reauthenticates_once(expiry):
    portal = FakePortal(data_responses=[expiry])
    auth = make_auth(portal)
    await auth.authenticate()

    response = await auth.fetch_with_session(DATA_URL)

    assert response.status_code == 200
    assert len(portal.logins) == 2
    assert portal.data_requests == ["PHPSESSID=sess1", "PHPSESSID=sess2"]
    assert auth.session_token == "sess2"


@pytest.mark.asyncio
async def test_retried_response_returned_even_if_still_expired():
    portal = FakePortal(data_responses=["expired", "expired", "expired"])
    auth = make_auth(portal)
    await auth.authenticate()

    response = await auth.fetch_with_session(DATA_URL)

    assert response.status_code == 401
    assert len(portal.data_requests) == 2


@pytest.mark.asyncio
async def test_fetch_with_retry_recovers_from_network_error():
    portal = FakePortal(data_responses=["error"])
    auth = make_auth(portal)
    await auth.authenticate()

    response = await auth.fetch_with_retry(DATA_URL)

    assert response.status_code == 200
    assert len(portal.logins) == 2


@pytest.mark.asyncio
async def test_fetch_with_retry_returns_last_failed_response():
    portal = FakePortal(data_responses=["server_error", "server_error"])
    auth = make_auth(portal)
    await auth.authenticate()

    response = await auth.fetch_with_retry(DATA_URL)

    assert response.status_code == 500
    assert len(portal.data_requests) == 2


@pytest.mark.asyncio
async def test_fetch_with_retry_raises_last_error():
    portal = FakePortal(data_responses=["error", "error"])
    auth = make_auth(portal)
    await auth.authenticate()

    with pytest.raises(httpx.ConnectError):
        await auth.fetch_with_retry(DATA_URL)


@pytest.mark.asyncio
async def test_validate_session():
    auth = make_auth(FakePortal())
    assert await auth.validate_session() is False

    await auth.authenticate()
    assert await auth.validate_session() is True

    auth.state = auth.state.model_copy(update={"cookies": {"PHPSESSID": "stale"}})
    assert await auth.validate_session() is False
