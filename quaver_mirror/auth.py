"""
Browser-derived authentication for quavergame.com.

The site sits behind Cloudflare, so a real Firefox instance (Playwright) loads
the homepage to earn the ``cf_clearance`` cookie. Archive downloads also need
a logged-in ``quaver_session`` cookie, which is either reused from the stored
storage state or typed in by the operator. Both cookies plus the browser's
user agent are handed to the HTTP downloader as a ``Session``.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError

from .config import (
    CLEARANCE_COOKIE,
    HOMEPAGE_SELECTOR,
    PAGE_TIMEOUT_MS,
    SESSION_COOKIE,
    SITE_DOMAIN,
    SITE_URL,
)
from .errors import AuthError, StorageError
from .session_store import SessionStore

UNINITIALIZED = "uninitialized"
AUTHENTICATING = "authenticating"
READY = "ready"


@dataclass(frozen=True)
class Session:
    """Everything an HTTP client needs to pass as the logged-in browser."""

    challenge_token: str
    session_token: str
    user_agent: str
    persisted: bool = False

    def __post_init__(self):
        missing = [
            name
            for name in ("challenge_token", "session_token", "user_agent")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Incomplete session, missing: {', '.join(missing)}")

    def cookie_header(self) -> str:
        return f"{CLEARANCE_COOKIE}={self.challenge_token}; {SESSION_COOKIE}={self.session_token}"

    def headers(self) -> Dict[str, str]:
        return {"Cookie": self.cookie_header(), "User-Agent": self.user_agent}

    def __repr__(self) -> str:
        # tokens are secrets
        return f"Session(user_agent={self.user_agent!r}, persisted={self.persisted})"


class CredentialProvider(Protocol):
    async def obtain_token(self) -> str: ...


class PromptCredentialProvider:
    """Ask the operator to paste the quaver_session cookie from their own browser."""

    def __init__(self, prompt: str = f"Enter {SESSION_COOKIE} cookie: "):
        self.prompt = prompt

    async def obtain_token(self) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, input, self.prompt)


def _cookie_value(cookies: List[dict], name: str) -> Optional[str]:
    for cookie in cookies:
        if cookie.get("name") == name and cookie.get("value"):
            return cookie["value"]
    return None


class AuthenticatedSession:
    """Owns the single browser context and the current Session."""

    def __init__(
        self,
        context: BrowserContext,
        page: Page,
        credentials: CredentialProvider,
        store: SessionStore,
        browser: Optional[Browser] = None,
    ):
        self.context = context
        self.page = page
        self.credentials = credentials
        self.store = store
        self.browser = browser
        self._session: Optional[Session] = None
        self._state = UNINITIALIZED
        self._lock = asyncio.Lock()

    @classmethod
    async def launch(
        cls,
        playwright: Playwright,
        credentials: CredentialProvider,
        store: SessionStore,
        headless: bool = True,
    ) -> "AuthenticatedSession":
        """Start Firefox with the stored cookie jar (if any) and one page."""
        browser = await playwright.firefox.launch(headless=headless)
        state = store.load()
        if state:
            print(f"Loaded stored session from {store.path}", file=sys.stderr)
        context = await browser.new_context(storage_state=state)
        page = await context.new_page()
        return cls(context, page, credentials, store, browser=browser)

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> str:
        return self._state

    async def acquire(self, reuse_existing: bool = True) -> Session:
        async with self._lock:
            return await self._acquire(reuse_existing)

    async def refresh(self, stale: Optional[Session] = None) -> Session:
        """
        Force a new session token; the previous one was rejected.

        If ``stale`` is given and another caller already replaced it while we
        waited for the lock, the newer session is returned as-is.
        """
        async with self._lock:
            current = self._session
            if stale is not None and current is not None and current != stale:
                return current
            return await self._acquire(False)

    async def _acquire(self, reuse_existing: bool) -> Session:
        self._state = AUTHENTICATING
        self._session = None
        try:
            session = await self._authenticate(reuse_existing)
        except Exception:
            self._state = UNINITIALIZED
            raise
        self._session = session
        self._state = READY
        return session

    async def _authenticate(self, reuse_existing: bool) -> Session:
        try:
            await self.page.goto(f"{SITE_URL}/", timeout=PAGE_TIMEOUT_MS)
            await self.page.wait_for_selector(HOMEPAGE_SELECTOR, timeout=PAGE_TIMEOUT_MS)
        except PlaywrightError as exc:
            raise AuthError(f"Homepage did not load past the bot check: {exc}") from exc

        cookies = await self.context.cookies()
        user_agent = await self.page.evaluate("() => navigator.userAgent")

        clearance = _cookie_value(cookies, CLEARANCE_COOKIE)
        if not clearance:
            raise AuthError(f"No {CLEARANCE_COOKIE} cookie after loading {SITE_URL}")
        if not user_agent:
            raise AuthError("Browser did not report a user agent")

        # try the stored quaver_session first
        if reuse_existing:
            token = _cookie_value(cookies, SESSION_COOKIE)
            if token:
                return Session(clearance, token, user_agent, persisted=True)
            print(f"No stored {SESSION_COOKIE} cookie, asking for one.", file=sys.stderr)

        token = (await self.credentials.obtain_token() or "").strip()
        if not token:
            raise AuthError(f"Empty {SESSION_COOKIE} cookie entered")

        await self.context.add_cookies([
            {
                "name": SESSION_COOKIE,
                "value": token,
                "domain": SITE_DOMAIN,
                "path": "/",
                "httpOnly": True,
            }
        ])

        persisted = True
        try:
            self.store.save(await self.context.storage_state())
        except StorageError as exc:
            persisted = False
            print(f"Warning: {exc} (continuing with in-memory session)", file=sys.stderr)

        return Session(clearance, token, user_agent, persisted=persisted)

    async def close(self) -> None:
        await self.context.close()
        if self.browser is not None:
            await self.browser.close()
