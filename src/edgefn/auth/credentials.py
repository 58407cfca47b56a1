"""Credential persistence for the Supabase OAuth token record."""

from __future__ import annotations

import json
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Protocol

from edgefn.utils.files import get_credentials_path
from edgefn.version import CREDENTIALS_SCHEMA_VERSION


@dataclass(frozen=True)
class CredentialRecord:
    """Supabase 凭据记录。

    属性：
        access_token：当前 access token
        refresh_token：用于换取新 access token 的 refresh token
        expires_in：access token 有效期（秒）
        issued_at：记录最后一次写入的时间（epoch 秒）
    """

    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    issued_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "issued_at": self.issued_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CredentialRecord":
        expires_in = data.get("expires_in")
        return cls(
            access_token=data.get("access_token") or None,
            refresh_token=data.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in else None,
            issued_at=int(data.get("issued_at") or 0),
        )


class CredentialStore(Protocol):
    """凭据存储协议：TokenManager 只通过它读写凭据。"""

    def read(self) -> CredentialRecord: ...

    def write(self, record: CredentialRecord) -> None: ...


class FileCredentialStore:
    """Persist the credential record in a JSON file guarded by a file lock."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or get_credentials_path()
        self._lock_path = self._path.with_suffix(self._path.suffix + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> CredentialRecord:
        """Read the record; a missing or unreadable file yields an empty record."""
        with self._file_lock():
            return self._load_unlocked()

    def write(self, record: CredentialRecord) -> None:
        """Replace the stored record atomically."""
        with self._file_lock():
            self._save_unlocked(record)

    def clear(self) -> None:
        with self._file_lock():
            if self._path.exists():
                self._path.unlink()

    def _load_unlocked(self) -> CredentialRecord:
        if not self._path.exists():
            return CredentialRecord()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return CredentialRecord()
        if not isinstance(data, dict):
            return CredentialRecord()
        supabase = data.get("supabase")
        if not isinstance(supabase, dict):
            return CredentialRecord()
        return CredentialRecord.from_dict(supabase)

    def _save_unlocked(self, record: CredentialRecord) -> None:
        payload = {
            "schema_version": CREDENTIALS_SCHEMA_VERSION,
            "supabase": record.to_dict(),
        }
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        if os.name != "nt":
            os.chmod(tmp, 0o600)
        os.replace(tmp, self._path)

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        """Cross-platform file lock using a lock file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock_path.open("a+b") as lock_file:
            _acquire_lock(lock_file)
            try:
                yield
            finally:
                _release_lock(lock_file)


def _acquire_lock(lock_file: Any) -> None:
    if os.name == "nt":
        import msvcrt

        lock_file.seek(0)
        while True:
            try:
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_NBLCK, 1)
                return
            except OSError:
                time.sleep(0.05)
    else:
        import fcntl  # type: ignore[import-not-found]

        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)


def _release_lock(lock_file: Any) -> None:
    if os.name == "nt":
        import msvcrt

        lock_file.seek(0)
        try:
            msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)
        except OSError:
            pass
    else:
        import fcntl  # type: ignore[import-not-found]

        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        except OSError:
            pass
