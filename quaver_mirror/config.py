"""Environment configuration and shared constants."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

SITE_URL = "https://quavergame.com"
SITE_DOMAIN = "quavergame.com"
API_URL = "https://api.quavergame.com/v1"

CLEARANCE_COOKIE = "cf_clearance"
SESSION_COOKIE = "quaver_session"
HOMEPAGE_SELECTOR = "#homepage"
PAGE_TIMEOUT_MS = 60000

ARCHIVE_EXTENSION = "qp"
ARCHIVE_CONTENT_TYPE = "application/octet-stream"
MAX_REDIRECTS = 5

DEFAULT_STORAGE_STATE = "storageState.json"
DEFAULT_OUT_DIR = "download"
DEFAULT_PREFIX = "mapsets"
DEFAULT_DATABASE = "quaver"
DEFAULT_REGION = "us-east-1"
DEFAULT_TIMEOUT = 300  # archives can be large
DEFAULT_AUTH_RETRIES = 1
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF = 5.0


@dataclass(frozen=True)
class Settings:
    # mysql
    DATABASE_HOST: str
    DATABASE_USER: str
    DATABASE_PASSWORD: str
    DATABASE_NAME: str

    # s3
    BUCKET_NAME: str
    AWS_REGION: str

    # browser session file
    STORAGE_STATE: str


def load_settings(env_file: str | None = None) -> Settings:
    """Read settings from the process environment, after loading ``.env`` if present."""
    load_dotenv(env_file, override=False)
    return Settings(
        DATABASE_HOST=os.getenv("DATABASE_HOST", "localhost"),
        DATABASE_USER=os.getenv("DATABASE_USER", ""),
        DATABASE_PASSWORD=os.getenv("DATABASE_PASSWORD", ""),
        DATABASE_NAME=os.getenv("DATABASE_NAME", DEFAULT_DATABASE),
        BUCKET_NAME=os.getenv("BUCKET_NAME", ""),
        AWS_REGION=os.getenv("AWS_REGION", DEFAULT_REGION),
        STORAGE_STATE=os.getenv("STORAGE_STATE", DEFAULT_STORAGE_STATE),
    )
