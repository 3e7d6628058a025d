#!/usr/bin/env python3
"""
Log in to quavergame.com once and save the browser cookie jar.

Loads the homepage in Firefox to pass the Cloudflare check, asks for your
quaver_session cookie, and writes the Playwright storage state that
``quaver-mirror`` reuses on later runs.
"""
import argparse
import asyncio

from playwright.async_api import async_playwright

from quaver_mirror.auth import AuthenticatedSession, PromptCredentialProvider
from quaver_mirror.config import SITE_DOMAIN, load_settings
from quaver_mirror.session_store import SessionStore


async def get_session(storage_state: str, headless: bool, reuse: bool) -> list:
    """Acquire a session and return the cookies the browser ended up with."""
    store = SessionStore(storage_state)
    async with async_playwright() as p:
        auth = await AuthenticatedSession.launch(p, PromptCredentialProvider(), store, headless=headless)
        try:
            print("Navigating to homepage...")
            session = await auth.acquire(reuse_existing=reuse)
            print(f"Got session for {session.user_agent}")
            if session.persisted:
                print(f"Saved cookies to {store.path}")
            return await auth.context.cookies()
        finally:
            await auth.close()


async def main():
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Get quavergame.com cookies with Playwright")
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window (useful when the bot check needs a human)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=settings.STORAGE_STATE,
        help=f"Storage state file (default: {settings.STORAGE_STATE})",
    )
    parser.add_argument(
        "--new",
        action="store_true",
        help="Ignore the stored quaver_session and ask for a new one",
    )
    args = parser.parse_args()

    cookies = await get_session(args.output, headless=not args.headful, reuse=not args.new)

    print("Cookies retrieved:")
    for c in cookies:
        domain = c.get("domain", "unknown")
        if SITE_DOMAIN in domain:
            print(f"  {domain}: {c.get('name', 'unknown')}")


if __name__ == "__main__":
    asyncio.run(main())
