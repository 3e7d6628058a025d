#!/usr/bin/env python3
"""Download a single mapset archive with the stored browser session."""
import argparse
import asyncio
import sys

import aiohttp
from playwright.async_api import async_playwright

from quaver_mirror.auth import AuthenticatedSession, PromptCredentialProvider
from quaver_mirror.config import DEFAULT_OUT_DIR, load_settings
from quaver_mirror.errors import AuthError, StorageError
from quaver_mirror.fetcher import ArchiveFetcher, FetchTarget
from quaver_mirror.session_store import SessionStore
from quaver_mirror.storage import LocalDirectory


async def download(auth, fetcher, target):
    """Fetch ``target``, logging in again once if the session is rejected. None on error."""
    try:
        session = await auth.acquire(reuse_existing=True)
        outcome = await fetcher.fetch(target, session)
        if outcome.needs_refresh:
            print(f"Session rejected ({outcome.reason}), logging in again...")
            outcome = await fetcher.fetch(target, await auth.refresh(stale=session))
    except (AuthError, StorageError) as exc:
        print(f"Failed to download {target.destination}: {exc}", file=sys.stderr)
        return None
    return outcome


async def fetch(mapset_id: int, out_dir: str) -> bool:
    store = SessionStore(load_settings().STORAGE_STATE)
    target = FetchTarget.for_mapset(mapset_id)
    async with async_playwright() as p, aiohttp.ClientSession() as http:
        auth = await AuthenticatedSession.launch(p, PromptCredentialProvider(), store)
        try:
            fetcher = ArchiveFetcher(http, LocalDirectory(out_dir), redownload=True)
            outcome = await download(auth, fetcher, target)
        finally:
            await auth.close()

    if outcome is None:
        return False
    if outcome.ok:
        print(f"Downloaded successfully: {target.destination} ({len(outcome.data)} bytes)")
        return True
    print(f"Failed to download {target.destination}: {outcome.reason}")
    return False


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Download one mapset by id")
    parser.add_argument("mapset_id", type=int)
    parser.add_argument("--out-dir", default=DEFAULT_OUT_DIR)
    args = parser.parse_args()
    sys.exit(0 if asyncio.run(fetch(args.mapset_id, args.out_dir)) else 1)
