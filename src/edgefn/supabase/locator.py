"""Supabase CLI 查找。

优先级（首个命中生效）：
1. SUPABASE_CLI_PATH 环境变量（直接信任，不检查文件、不轮询）
2. 项目本地安装 <app>/node_modules/.bin/supabase
3. 全局安装（按名称在 PATH 中查找）

本地与全局都找不到时按固定间隔轮询（CLI 可能正在安装），
超过等待上限后抛出 CliNotFound。
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Mapping

from edgefn.errors import CliNotFound

logger = logging.getLogger(__name__)

CLI_PATH_ENV = "SUPABASE_CLI_PATH"
CLI_NAME = "supabase"
POLL_INTERVAL_S = 1.0
WAIT_TIMEOUT_S = 5 * 60.0

_WHITESPACE = re.compile(r"\s")


class CliSource(str, Enum):
    """CLI 位置来源。"""

    ENV = "env"
    LOCAL = "local"
    GLOBAL = "global"


@dataclass(frozen=True)
class CliLocation:
    """解析得到的 CLI 位置。

    Attributes:
        command: 可直接拼入 shell 命令的字符串（已加引号）
        raw_path: 原始路径
        source: 来源
    """

    command: str
    raw_path: str
    source: CliSource


def quote_command(command: str) -> str:
    """为 shell 调用加引号：转义双引号，包含空白时整体加双引号。"""
    if '"' in command:
        command = command.replace('"', '\\"')
    if _WHITESPACE.search(command):
        return f'"{command}"'
    return command


def _location(path: str, source: CliSource) -> CliLocation:
    return CliLocation(command=quote_command(path), raw_path=path, source=source)


class CliLocator:
    """每次 deploy/serve 调用都重新解析 CLI 位置，不跨调用缓存。"""

    def __init__(
        self,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        wait_timeout_s: float = WAIT_TIMEOUT_S,
        which: Callable[[str], str | None] = shutil.which,
        platform: str = sys.platform,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.poll_interval_s = poll_interval_s
        self.wait_timeout_s = wait_timeout_s
        self._which = which
        self._platform = platform
        self._clock = clock
        self._sleep = sleep

    def local_candidates(self, app_path: Path) -> list[Path]:
        bin_dir = Path(app_path) / "node_modules" / ".bin"
        if self._platform == "win32":
            return [bin_dir / f"{CLI_NAME}.cmd", bin_dir / f"{CLI_NAME}.exe"]
        return [bin_dir / CLI_NAME]

    def find_local(self, app_path: Path) -> CliLocation | None:
        for candidate in self.local_candidates(app_path):
            if candidate.exists():
                return _location(str(candidate), CliSource.LOCAL)
        return None

    def find_global(self) -> CliLocation | None:
        try:
            resolved = self._which(CLI_NAME)
        except OSError as exc:
            logger.debug("Global Supabase CLI lookup failed: %s", exc)
            return None
        candidate = next(
            (line.strip() for line in (resolved or "").splitlines() if line.strip()),
            None,
        )
        if candidate:
            return _location(candidate, CliSource.GLOBAL)
        return None

    async def resolve(self, app_path: Path, *, env: Mapping[str, str] | None = None) -> CliLocation:
        """解析 CLI 位置。

        Args:
            app_path: 应用根目录
            env: 本次调用的环境快照（默认读取一次 os.environ）

        Raises:
            CliNotFound: 超过等待上限仍未找到
        """
        environ = dict(os.environ) if env is None else env
        override = (environ.get(CLI_PATH_ENV) or "").strip()
        if override:
            logger.info("Using Supabase CLI path from %s environment variable: %s", CLI_PATH_ENV, override)
            return _location(override, CliSource.ENV)

        started = self._clock()
        logged_waiting = False
        while True:
            location = self.find_local(app_path) or self.find_global()
            if location is not None:
                logger.info("Supabase CLI detected (%s) at %s", location.source.value, location.raw_path)
                return location

            if self._clock() - started >= self.wait_timeout_s:
                break

            if not logged_waiting:
                logger.info(
                    "Supabase CLI not found yet. Waiting for installation to complete before running commands..."
                )
                logged_waiting = True

            await self._sleep(self.poll_interval_s)

        raise CliNotFound(
            "未找到 Supabase CLI。请先运行 `pnpm add -D supabase` 或 "
            "`npm install --save-dev supabase` 安装后再运行 Supabase 函数。"
        )
