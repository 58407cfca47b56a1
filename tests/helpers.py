"""Test helper utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from edgefn.auth import CredentialRecord


def read_json(path: Path) -> Any:
    """Read JSON content from a path."""
    return json.loads(path.read_text(encoding="utf-8"))


class MemoryCredentialStore:
    """内存凭据存储，记录写入次数。"""

    def __init__(self, record: CredentialRecord | None = None) -> None:
        self.record = record or CredentialRecord()
        self.writes: list[CredentialRecord] = []

    def read(self) -> CredentialRecord:
        return self.record

    def write(self, record: CredentialRecord) -> None:
        self.record = record
        self.writes.append(record)
