import asyncio

from fakes import FakeContext, FakeCredentials, FakePage, cookie
from fetch_mapset import download
from quaver_mirror.auth import AuthenticatedSession
from quaver_mirror.errors import StorageError
from quaver_mirror.fetcher import FetchOutcome, FetchTarget
from quaver_mirror.session_store import SessionStore


class RecordingFetcher:
    def __init__(self, *outcomes, error=None):
        self.outcomes = list(outcomes)
        self.error = error
        self.sessions = []

    async def fetch(self, target, session):
        self.sessions.append(session.session_token)
        if self.error is not None:
            raise self.error
        return self.outcomes.pop(0)


def auth_with(tmp_path, cookies, credentials):
    return AuthenticatedSession(
        FakeContext(cookies),
        FakePage(),
        credentials,
        SessionStore(tmp_path / "storageState.json"),
    )


def test_missing_clearance_cookie_is_reported_not_raised(tmp_path, capsys):
    auth = auth_with(tmp_path, [], FakeCredentials("fresh"))
    fetcher = RecordingFetcher()

    outcome = asyncio.run(download(auth, fetcher, FetchTarget.for_mapset(42)))

    assert outcome is None
    assert fetcher.sessions == []
    assert "Failed to download 42.qp: No cf_clearance cookie" in capsys.readouterr().err


def test_storage_failure_is_reported_not_raised(tmp_path, capsys):
    cookies = [cookie("cf_clearance", "cf-1"), cookie("quaver_session", "qs-1")]
    auth = auth_with(tmp_path, cookies, FakeCredentials())
    fetcher = RecordingFetcher(error=StorageError("disk full"))

    outcome = asyncio.run(download(auth, fetcher, FetchTarget.for_mapset(42)))

    assert outcome is None
    assert fetcher.sessions == ["qs-1"]
    assert "Failed to download 42.qp: disk full" in capsys.readouterr().err


def test_rejected_session_is_refreshed_once(tmp_path):
    cookies = [cookie("cf_clearance", "cf-1"), cookie("quaver_session", "stale")]
    credentials = FakeCredentials("fresh")
    auth = auth_with(tmp_path, cookies, credentials)
    fetcher = RecordingFetcher(FetchOutcome.auth_failure("login page"), FetchOutcome.success(b"PK"))

    outcome = asyncio.run(download(auth, fetcher, FetchTarget.for_mapset(42)))

    assert outcome.ok
    assert fetcher.sessions == ["stale", "fresh"]
    assert credentials.calls == 1
