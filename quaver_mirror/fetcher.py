"""Authenticated archive downloads with response classification."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import aiohttp
import yarl
from bs4 import BeautifulSoup

from .auth import Session
from .config import (
    ARCHIVE_CONTENT_TYPE,
    ARCHIVE_EXTENSION,
    CLEARANCE_COOKIE,
    MAX_REDIRECTS,
    SESSION_COOKIE,
    SITE_URL,
)
from .storage import Destination

DOWNLOADED = "downloaded"
SKIPPED = "skipped"
AUTH_FAILURE = "auth_failure"
TRANSIENT = "transient"


@dataclass(frozen=True)
class FetchTarget:
    id: int
    destination: str

    @classmethod
    def for_mapset(cls, mapset_id: int) -> "FetchTarget":
        return cls(id=int(mapset_id), destination=f"{mapset_id}.{ARCHIVE_EXTENSION}")


@dataclass(frozen=True)
class FetchOutcome:
    status: str
    data: Optional[bytes] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, data: bytes) -> "FetchOutcome":
        return cls(DOWNLOADED, data=data)

    @classmethod
    def already_present(cls) -> "FetchOutcome":
        return cls(SKIPPED)

    @classmethod
    def auth_failure(cls, reason: str) -> "FetchOutcome":
        return cls(AUTH_FAILURE, reason=reason)

    @classmethod
    def transient(cls, reason: str) -> "FetchOutcome":
        return cls(TRANSIENT, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status in (DOWNLOADED, SKIPPED)

    @property
    def needs_refresh(self) -> bool:
        return self.status == AUTH_FAILURE


def page_title(body: bytes) -> Optional[str]:
    """Title of an HTML error/login page, if there is one."""
    soup = BeautifulSoup(body, "lxml")
    if soup.title and soup.title.string:
        return soup.title.string.strip() or None
    return None


def media_type(content_type: Optional[str]) -> str:
    # "application/octet-stream; charset=binary" -> "application/octet-stream"
    return (content_type or "").split(";", 1)[0].strip().lower()


class ArchiveFetcher:
    """
    Download ``/download/mapset/<id>`` with a browser Session.

    Anything other than an octet-stream body is the site handing back an HTML
    login or challenge page, so it is reported as an auth failure for the
    caller to refresh the session. The fetcher never refreshes by itself.
    """

    def __init__(
        self,
        http: aiohttp.ClientSession,
        destination: Destination,
        base_url: str = SITE_URL,
        redownload: bool = False,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        self.http = http
        self.destination = destination
        self.base_url = yarl.URL(base_url)
        self.redownload = redownload
        self.timeout = timeout

    def url_for(self, target: FetchTarget) -> yarl.URL:
        return self.base_url / "download" / "mapset" / str(target.id)

    def is_present(self, target: FetchTarget) -> bool:
        return not self.redownload and self.destination.exists(target.destination)

    async def fetch(self, target: FetchTarget, session: Session) -> FetchOutcome:
        if self.is_present(target):
            return FetchOutcome.already_present()

        # jar cookies override same-named entries in the Cookie header, and the
        # login page hands out a guest quaver_session, so overwrite the jar too
        self.http.cookie_jar.update_cookies(
            {CLEARANCE_COOKIE: session.challenge_token, SESSION_COOKIE: session.session_token},
            response_url=self.base_url,
        )
        kwargs = {"headers": session.headers(), "max_redirects": MAX_REDIRECTS}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            async with self.http.get(self.url_for(target), **kwargs) as resp:
                content_type = media_type(resp.headers.get("Content-Type"))
                body = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return FetchOutcome.transient(f"{type(exc).__name__}: {exc}")

        if content_type != ARCHIVE_CONTENT_TYPE:
            title = page_title(body) if body else None
            reason = f"HTTP {status}, got {content_type or 'no content type'} instead of an archive"
            if title:
                reason += f" (page: {title!r})"
            return FetchOutcome.auth_failure(reason)

        if not 200 <= status < 300:
            return FetchOutcome.transient(f"HTTP {status}")

        self.destination.put(target.destination, body)
        return FetchOutcome.success(body)
