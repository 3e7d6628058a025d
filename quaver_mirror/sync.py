#!/usr/bin/env python3
"""
Mirror every ranked Quaver mapset.

1. List ranked mapset ids from the API.
2. Index what is already in the destination (local folder or S3 prefix).
3. Upsert missing mapsets and their maps into MySQL.
4. Download each missing ``<id>.qp`` with the browser session, refreshing the
   session when the site answers with an HTML page instead of the archive.
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional

import aiohttp
import boto3
from playwright.async_api import async_playwright

from .auth import UNINITIALIZED, AuthenticatedSession, PromptCredentialProvider, Session
from .catalog import CatalogClient
from .config import (
    DEFAULT_AUTH_RETRIES,
    DEFAULT_BACKOFF,
    DEFAULT_OUT_DIR,
    DEFAULT_PREFIX,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    load_settings,
)
from .database import MapsetDatabase
from .errors import AuthError, StorageError
from .fetcher import DOWNLOADED, ArchiveFetcher, FetchOutcome, FetchTarget
from .session_store import SessionStore
from .storage import LocalDirectory, S3Bucket


class SyncStats:
    def __init__(self):
        self.downloaded = 0
        self.skipped = 0
        self.failed = 0
        self.refreshes = 0
        self.synced = 0
        self.sync_failed = 0
        self.failed_ids: List[int] = []


class MapsetSync:
    """Sequential catalog -> database -> archive mirror."""

    def __init__(
        self,
        catalog: CatalogClient,
        fetcher: ArchiveFetcher,
        open_auth: Callable[[], Awaitable[AuthenticatedSession]],
        database: Optional[MapsetDatabase] = None,
        force_sync: bool = False,
        auth_retries: int = DEFAULT_AUTH_RETRIES,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
    ):
        self.catalog = catalog
        self.fetcher = fetcher
        self.open_auth = open_auth
        self.database = database
        self.force_sync = force_sync
        self.auth_retries = max(0, auth_retries)
        self.retries = max(0, retries)
        self.backoff = max(0.0, backoff)
        self.auth: Optional[AuthenticatedSession] = None
        self.stats = SyncStats()
        self._tried_stored_session = False

    async def run(self) -> SyncStats:
        mapset_ids = await self.catalog.ranked_mapset_ids()
        print(f"Found {len(mapset_ids)} ranked mapsets")

        self.fetcher.destination.prepare()

        if self.database is not None:
            await self.sync_database(mapset_ids)

        print("Downloading mapsets...")
        total = len(mapset_ids)
        for i, mapset_id in enumerate(mapset_ids):
            await self.download(mapset_id, i + 1, total)

        if self.stats.failed:
            print(
                f"Done with {self.stats.failed} failed download(s): "
                f"{', '.join(str(i) for i in self.stats.failed_ids)}"
            )
        else:
            print("Everything is up-to-date 😎")
        return self.stats

    async def sync_database(self, mapset_ids: Iterable[int]) -> None:
        print("Syncing database...")
        mapset_ids = list(mapset_ids)
        existing = self.database.existing_mapset_ids()
        count = len(mapset_ids)

        for i, mapset_id in enumerate(mapset_ids):
            if mapset_id in existing and not self.force_sync:
                continue

            print(f"Syncing mapset {mapset_id} to database... ({i + 1}/{count})")
            try:
                mapset = dict(await self.catalog.mapset(mapset_id))
                maps = mapset.pop("maps", None) or []
                self.database.upsert_mapset(mapset)
                for map_ in maps:
                    self.database.upsert_map(map_)
            except (aiohttp.ClientError, asyncio.TimeoutError, StorageError, ValueError) as exc:
                self.stats.sync_failed += 1
                print(f"Unable to sync mapset {mapset_id}: {exc}", file=sys.stderr)
                continue
            self.stats.synced += 1

    async def _current_session(self) -> Session:
        if self.auth is None:
            self.auth = await self.open_auth()
        if self.auth.session is not None:
            return self.auth.session
        if self.auth.state == UNINITIALIZED and not self._tried_stored_session:
            self._tried_stored_session = True
            return await self.auth.acquire(reuse_existing=True)
        return await self.auth.refresh()

    def _fail(self, mapset_id: int, reason: str) -> None:
        self.stats.failed += 1
        self.stats.failed_ids.append(mapset_id)
        print(f"[FAIL] mapset {mapset_id}: {reason}", file=sys.stderr)

    async def download(self, mapset_id: int, position: int, total: int) -> Optional[FetchOutcome]:
        """Fetch one archive with bounded auth and transient retries."""
        target = FetchTarget.for_mapset(mapset_id)
        if self.fetcher.is_present(target):
            self.stats.skipped += 1
            return FetchOutcome.already_present()

        print(f"Downloading mapset {mapset_id}... ({position}/{total})")
        try:
            session = await self._current_session()
        except AuthError as exc:
            self._fail(mapset_id, str(exc))
            return None

        auth_attempts = 0
        transient_attempts = 0
        while True:
            try:
                outcome = await self.fetcher.fetch(target, session)
            except StorageError as exc:
                self._fail(mapset_id, str(exc))
                return None

            if outcome.ok:
                if outcome.status == DOWNLOADED:
                    self.stats.downloaded += 1
                else:
                    self.stats.skipped += 1
                return outcome

            if outcome.needs_refresh:
                if auth_attempts >= self.auth_retries:
                    self._fail(mapset_id, outcome.reason or "rejected after session refresh")
                    return outcome
                auth_attempts += 1
                print(f"[REFRESH] {outcome.reason}. Refetching cookies...", file=sys.stderr)
                try:
                    session = await self.auth.refresh(stale=session)
                except AuthError as exc:
                    self._fail(mapset_id, str(exc))
                    return outcome
                self.stats.refreshes += 1
                print(f"Trying to download mapset {mapset_id} again...")
                continue

            if transient_attempts >= self.retries:
                self._fail(mapset_id, outcome.reason or "network error")
                return outcome
            transient_attempts += 1
            delay = min(60, self.backoff * (2 ** (transient_attempts - 1))) * random.uniform(0.8, 1.2)
            print(
                f"[RETRY] mapset {mapset_id}: {outcome.reason}, "
                f"attempt {transient_attempts}/{self.retries} in {delay:.1f}s",
                file=sys.stderr,
            )
            await asyncio.sleep(delay)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mirror ranked Quaver mapsets into MySQL and S3 (or a local folder).",
        epilog="""
Environment (.env is loaded if present):
  DATABASE_HOST, DATABASE_USER, DATABASE_PASSWORD, DATABASE_NAME
  BUCKET_NAME, AWS_REGION
  STORAGE_STATE

The first run asks for your quaver_session cookie:
  1. Log in on https://quavergame.com in your normal browser
  2. Open DevTools (F12) -> Storage/Application -> Cookies
  3. Copy the value of "quaver_session" and paste it at the prompt
The cookie jar is saved to the storage state file and reused next time.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Write archives to --out-dir instead of uploading to the S3 bucket.",
    )
    parser.add_argument("--out-dir", default=DEFAULT_OUT_DIR, help="Local download folder.")
    parser.add_argument("--prefix", default=DEFAULT_PREFIX, help="S3 key prefix for archives.")
    parser.add_argument(
        "--storage-state",
        default="",
        help="Playwright storage state file (default: $STORAGE_STATE or storageState.json).",
    )
    parser.add_argument("--headful", action="store_true", help="Show the browser window.")
    parser.add_argument(
        "--force-sync",
        action="store_true",
        help="Re-fetch and upsert mapsets that are already in the database.",
    )
    parser.add_argument(
        "--redownload",
        action="store_true",
        help="Download archives even if they already exist in the destination.",
    )
    parser.add_argument("--skip-db", action="store_true", help="Don't touch the database.")
    parser.add_argument(
        "--auth-retries",
        type=int,
        default=DEFAULT_AUTH_RETRIES,
        help=f"Session refreshes allowed per mapset (default: {DEFAULT_AUTH_RETRIES}).",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=DEFAULT_RETRIES,
        help=f"Retries on network errors per mapset (default: {DEFAULT_RETRIES}).",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"Per-download timeout in seconds (default: {DEFAULT_TIMEOUT}).",
    )
    parser.add_argument(
        "--failed-file",
        default="failed.txt",
        help="Write failed mapset ids to this file (empty to disable).",
    )
    return parser


async def run_sync(args: argparse.Namespace) -> SyncStats:
    settings = load_settings()
    store = SessionStore(args.storage_state or settings.STORAGE_STATE)

    if args.local:
        destination = LocalDirectory(args.out_dir)
    else:
        if not settings.BUCKET_NAME:
            raise StorageError("BUCKET_NAME is not set (use --local to download to disk)")
        s3 = boto3.client("s3", region_name=settings.AWS_REGION)
        destination = S3Bucket(s3, settings.BUCKET_NAME, args.prefix)
    print(f"Destination: {destination}")

    database = None
    if not args.skip_db:
        database = MapsetDatabase.connect(settings)
        database.create_tables()

    timeout = aiohttp.ClientTimeout(total=max(1, args.timeout))
    try:
        async with async_playwright() as p, aiohttp.ClientSession() as http:

            async def open_auth() -> AuthenticatedSession:
                return await AuthenticatedSession.launch(
                    p, PromptCredentialProvider(), store, headless=not args.headful
                )

            sync = MapsetSync(
                catalog=CatalogClient(http),
                fetcher=ArchiveFetcher(http, destination, redownload=args.redownload, timeout=timeout),
                open_auth=open_auth,
                database=database,
                force_sync=args.force_sync,
                auth_retries=args.auth_retries,
                retries=args.retries,
            )
            try:
                return await sync.run()
            finally:
                if sync.auth is not None:
                    await sync.auth.close()
    finally:
        if database is not None:
            database.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        stats = asyncio.run(run_sync(args))
    except (StorageError, AuthError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.failed_file:
        failed_path = Path(args.failed_file)
        if stats.failed_ids:
            failed_path.write_text("\n".join(str(i) for i in stats.failed_ids) + "\n", encoding="utf-8")
        elif failed_path.exists():
            failed_path.unlink()

    print(
        f"Done. Downloaded: {stats.downloaded}, Skipped: {stats.skipped}, "
        f"Failed: {stats.failed}, Session refreshes: {stats.refreshes}, "
        f"Synced: {stats.synced}"
    )
    return 1 if stats.failed else 0


if __name__ == "__main__":
    sys.exit(main())
