import logging
import re
from typing import Any, Dict, Iterable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from bmkg_weather.config import config

# Get logger for this module
logger = logging.getLogger("bmkg_weather.session")

SESSION_COOKIE = "PHPSESSID"

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "en-US,en;q=0.9,id-ID;q=0.8,id;q=0.7"

PAGE_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "accept-language": ACCEPT_LANGUAGE,
    "cache-control": "max-age=0",
    "upgrade-insecure-requests": "1",
    "user-agent": USER_AGENT,
}

AJAX_HEADERS = {
    "accept": "application/json, text/javascript, */*; q=0.01",
    "accept-language": ACCEPT_LANGUAGE,
    "x-requested-with": "XMLHttpRequest",
    "user-agent": USER_AGENT,
}

# A folded Set-Cookie header separates cookies with a comma followed by the next cookie name.
# Commas inside Expires dates are followed by a digit and do not match.
_COOKIE_SPLIT_RE = re.compile(r",\s*(?=[A-Za-z_][\w.\-]*=)")


class SessionError(RuntimeError):
    """Raised when the session is used out of order"""


def parse_set_cookie(header: str) -> Dict[str, str]:
    """Extract name/value pairs from a (possibly folded) Set-Cookie header value"""
    cookies = {}
    for part in _COOKIE_SPLIT_RE.split(header):
        pair = part.split(";", 1)[0].strip()
        name, sep, value = pair.partition("=")
        name, value = name.strip(), value.strip()
        if sep and name and value:
            cookies[name] = value
    return cookies


class SessionState(BaseModel):
    """Cookie session owned by a single authenticator"""

    model_config = ConfigDict(frozen=True)

    cookies: Dict[str, str] = Field(default_factory=dict)
    session_token: Optional[str] = None
    is_authenticated: bool = False

    def with_set_cookie(self, headers: Iterable[str]) -> "SessionState":
        cookies = dict(self.cookies)
        for header in headers:
            cookies.update(parse_set_cookie(header))
        return self.model_copy(
            update={"cookies": cookies, "session_token": cookies.get(SESSION_COOKIE, self.session_token)}
        )

    def authenticated(self, is_authenticated: bool) -> "SessionState":
        return self.model_copy(update={"is_authenticated": is_authenticated})

    def expired(self) -> "SessionState":
        return self.authenticated(False)

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


class SessionResult(BaseModel):
    """Outcome of one step of the login handshake"""

    success: bool
    status: int
    status_text: str = ""
    session_token: Optional[str] = None
    cookies: Dict[str, str] = Field(default_factory=dict)


def _set_cookie_headers(response: httpx.Response) -> list:
    # Cookies may be set on redirect hops as well as on the final response
    headers = []
    for hop in [*response.history, response]:
        headers.extend(hop.headers.get_list("set-cookie"))
    return headers


class BMKGAuth:
    """Session-authenticated client for the BMKG AWS Center portal"""

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.username = username if username is not None else config.username
        self._password = password if password is not None else config.password
        self.base_url = (base_url or config.aws_base_url).rstrip("/")
        self.state = SessionState()
        self._client = client

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    @property
    def session_token(self) -> Optional[str]:
        return self.state.session_token

    @property
    def cookies(self) -> Dict[str, str]:
        return dict(self.state.cookies)

    async def _request(self, method: str, url: str, follow_redirects: bool = True, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, follow_redirects=follow_redirects, **kwargs)

        # A short-lived client per call keeps the cookie session in self.state only
        async with httpx.AsyncClient(timeout=config.http_timeout) as client:
            return await client.request(method, url, follow_redirects=follow_redirects, **kwargs)

    async def get_initial_session(self) -> SessionResult:
        """Step 1: open the portal root to obtain a fresh session cookie"""
        try:
            response = await self._request("GET", f"{self.base_url}/", headers=PAGE_HEADERS)
        except httpx.HTTPError as e:
            logger.error(f"Could not reach {self.base_url} for an initial session: {e}")
            return SessionResult(success=False, status=0, status_text=str(e))

        self.state = self.state.with_set_cookie(_set_cookie_headers(response))
        if not response.is_success:
            logger.warning(f"Initial session request returned HTTP {response.status_code}")
        logger.debug(f"Initial session token present: {self.state.session_token is not None}")

        return SessionResult(
            success=response.is_success,
            status=response.status_code,
            status_text=response.reason_phrase,
            session_token=self.state.session_token,
            cookies=self.cookies,
        )

    async def login(self, captcha: Optional[str] = None) -> SessionResult:
        """Step 2: post the login form using the session cookie from step 1"""
        if not self.state.session_token:
            raise SessionError(f"No {SESSION_COOKIE} yet. Call get_initial_session() first.")

        headers = {
            **PAGE_HEADERS,
            "content-type": "application/x-www-form-urlencoded",
            "cookie": self.state.cookie_header(),
            "origin": self.base_url,
            "referer": f"{self.base_url}/",
        }
        form = {
            "username": self.username,
            "password": self._password,
            "captcha": captcha if captcha is not None else config.captcha,
        }

        try:
            response = await self._request(
                "POST", f"{self.base_url}{config.login_path}/verify", headers=headers, data=form
            )
        except httpx.HTTPError as e:
            logger.error(f"Login request failed: {e}")
            self.state = self.state.expired()
            return SessionResult(success=False, status=0, status_text=str(e), session_token=self.state.session_token)

        self.state = self.state.with_set_cookie(_set_cookie_headers(response)).authenticated(response.is_success)
        if response.is_success:
            logger.info(f"Logged in to {self.base_url} as {self.username}")
        else:
            logger.warning(f"Login rejected with HTTP {response.status_code}")

        return SessionResult(
            success=response.is_success,
            status=response.status_code,
            status_text=response.reason_phrase,
            session_token=self.state.session_token,
        )

    async def authenticate(self, captcha: Optional[str] = None) -> bool:
        """Run the full handshake and return whether the session is authenticated"""
        await self.get_initial_session()
        if not self.state.session_token:
            logger.error("No session cookie received, cannot log in")
            self.state = self.state.expired()
            return False

        await self.login(captcha)
        return self.state.is_authenticated

    def _is_login_redirect(self, response: httpx.Response) -> bool:
        return bool(response.history) and config.login_path in response.url.path

    def _is_expired(self, response: httpx.Response) -> bool:
        return response.status_code in (401, 403) or self._is_login_redirect(response)

    async def fetch_with_session(self, url: str, method: str = "GET", **options: Any) -> httpx.Response:
        """Fetch with the current session, re-authenticating once if the portal reports it expired"""
        if not self.state.is_authenticated:
            raise SessionError("Not logged in. Call authenticate() first.")

        extra_headers = options.pop("headers", None) or {}

        def build_headers() -> Dict[str, str]:
            return {**AJAX_HEADERS, **extra_headers, "cookie": self.state.cookie_header()}

        response = await self._request(method, url, headers=build_headers(), **options)

        if self._is_expired(response):
            logger.warning(f"Session expired (HTTP {response.status_code} from {response.url}), re-authenticating")
            self.state = self.state.expired()
            await self.authenticate()

            # Retried response is returned whatever its outcome
            return await self._request(method, url, headers=build_headers(), **options)

        return response

    async def fetch_with_retry(self, url: str, max_retries: int = 1, **options: Any) -> httpx.Response:
        """Fetch with up to max_retries extra attempts, each preceded by a fresh login"""
        last_error: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            try:
                response = await self.fetch_with_session(url, **options)
            except (httpx.HTTPError, SessionError) as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(f"Error fetching {url}: {e}, retrying")
                    self.state = self.state.expired()
                    await self.authenticate()
                continue

            if response.is_success or attempt >= max_retries:
                return response

            logger.warning(f"Request to {url} failed ({response.status_code}), retrying")
            self.state = self.state.expired()
            await self.authenticate()

        raise last_error or SessionError("Max retries reached")

    async def validate_session(self) -> bool:
        """Check the session against a lightweight page without following redirects"""
        if not self.state.is_authenticated or not self.state.session_token:
            return False

        try:
            response = await self._request(
                "GET",
                f"{self.base_url}/dashboard",
                follow_redirects=False,
                headers={**PAGE_HEADERS, "cookie": self.state.cookie_header()},
            )
        except httpx.HTTPError as e:
            logger.debug(f"Session validation failed: {e}")
            return False

        if response.status_code in (301, 302):
            return False
        return response.is_success
