"""Where downloaded archives end up: a local folder or an S3 prefix."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Set

from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError


class Destination(Protocol):
    def prepare(self) -> None: ...

    def exists(self, name: str) -> bool: ...

    def put(self, name: str, data: bytes) -> None: ...


class LocalDirectory:
    def __init__(self, out_dir: str | Path):
        self.out_dir = Path(out_dir)

    def __str__(self) -> str:
        return str(self.out_dir)

    def prepare(self) -> None:
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def exists(self, name: str) -> bool:
        return (self.out_dir / name).exists()

    def put(self, name: str, data: bytes) -> None:
        dest = self.out_dir / name
        tmp_path = dest.with_suffix(dest.suffix + ".part")
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as handle:
                handle.write(data)
            tmp_path.replace(dest)
        except OSError as exc:
            raise StorageError(f"Unable to write {dest}: {exc}") from exc


class S3Bucket:
    """
    Archives stored as ``<prefix>/<name>`` in a bucket.

    ``prepare()`` lists the prefix once so presence checks during the run
    don't hit S3 per mapset; every successful ``put`` is added to that index.
    """

    def __init__(self, client, bucket: str, prefix: str = "mapsets"):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._present: Optional[Set[str]] = None

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}"

    def key_for(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def list_keys(self) -> List[str]:
        """Every key under the prefix, following Marker pagination to the end."""
        keys: List[str] = []
        seen: Set[str] = set()
        marker = None
        while True:
            params = {"Bucket": self.bucket}
            if self.prefix:
                params["Prefix"] = self.prefix
            if marker:
                params["Marker"] = marker
            try:
                response = self.client.list_objects(**params)
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"Unable to list {self}: {exc}") from exc

            contents = response.get("Contents", [])
            for item in contents:
                key = item["Key"]
                if key not in seen:
                    seen.add(key)
                    keys.append(key)

            if not response.get("IsTruncated") or not contents:
                return keys
            marker = response.get("NextMarker") or contents[-1]["Key"]

    def prepare(self) -> None:
        strip = f"{self.prefix}/" if self.prefix else ""
        self._present = {key[len(strip):] if key.startswith(strip) else key for key in self.list_keys()}

    def exists(self, name: str) -> bool:
        if self._present is None:
            self.prepare()
        return name in self._present

    def put(self, name: str, data: bytes) -> None:
        key = self.key_for(name)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to upload {key} to {self.bucket}: {exc}") from exc
        if self._present is not None:
            self._present.add(name)
