"""Persist the browser cookie jar (Playwright storage state) between runs."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import StorageError


class SessionStore:
    """Single storage-state file, overwritten on every fresh login."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored storage state, or None if missing or unusable."""
        if not self.path.exists():
            return None

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            print(f"Ignoring unreadable session file {self.path}: {exc}", file=sys.stderr)
            return None

        if not isinstance(data, dict) or not isinstance(data.get("cookies"), list):
            print(f"Ignoring malformed session file {self.path}", file=sys.stderr)
            return None
        return data

    def save(self, state: Dict[str, Any]) -> None:
        """Write the storage state through a temp file so readers never see a partial file."""
        tmp_path = self.path.with_suffix(self.path.suffix + ".part")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(state, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StorageError(f"Unable to save session to {self.path}: {exc}") from exc
