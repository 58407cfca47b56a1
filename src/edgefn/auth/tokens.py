"""Supabase access token 管理。

access token 在到期前 safety_margin_s 秒内（或缺少到期信息时）视为过期。
刷新并写回的过程在命名锁 "refresh-supabase-token" 下执行，
并发发现过期的调用方只会触发一次刷新交换；读取仍有效的 token 不加锁。
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from edgefn.core.config import DEFAULT_REFRESH_URL
from edgefn.core.lock import NamedLocks, get_default_locks
from edgefn.errors import NoRefreshToken, RefreshFailed
from edgefn.version import USER_AGENT

from .credentials import CredentialRecord, CredentialStore

logger = logging.getLogger(__name__)

REFRESH_LOCK_NAME = "refresh-supabase-token"
DEFAULT_SAFETY_MARGIN_S = 300

_RECONNECT_HINT = "请在设置中断开 Supabase 连接后重新连接。"


def is_token_stale(
    record: CredentialRecord,
    now: float,
    safety_margin_s: int = DEFAULT_SAFETY_MARGIN_S,
) -> bool:
    """判断 token 是否需要刷新。

    Args:
        record: 凭据记录
        now: 当前 epoch 秒
        safety_margin_s: 安全余量（秒）

    Returns:
        缺少 expires_in，或 now >= issued_at + expires_in - safety_margin_s 时返回 True
    """
    if not record.expires_in:
        return True
    return now >= record.issued_at + record.expires_in - safety_margin_s


class TokenManager:
    """保证调用方拿到有效的 Supabase access token。"""

    def __init__(
        self,
        store: CredentialStore,
        *,
        refresh_url: str = DEFAULT_REFRESH_URL,
        locks: NamedLocks | None = None,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
        clock: Callable[[], float] = time.time,
        safety_margin_s: int = DEFAULT_SAFETY_MARGIN_S,
        timeout_s: float = 30.0,
    ) -> None:
        self.store = store
        self.refresh_url = refresh_url
        self.safety_margin_s = safety_margin_s
        self._locks = locks or get_default_locks()
        self._clock = clock
        self._http_client_factory = http_client_factory or (
            lambda: httpx.AsyncClient(timeout=timeout_s, headers={"User-Agent": USER_AGENT})
        )

    def is_stale(self, record: CredentialRecord) -> bool:
        return is_token_stale(record, self._clock(), self.safety_margin_s)

    async def ensure_valid_access_token(self) -> str:
        """返回有效的 access token，必要时先刷新。

        Raises:
            NoRefreshToken: 凭据中没有 refresh token
            RefreshFailed: 刷新交换失败
        """
        # 凭据文件的读写带阻塞文件锁，放到线程里执行，不占用事件循环
        record = await asyncio.to_thread(self.store.read)
        if record.access_token and not self.is_stale(record):
            return record.access_token

        async with self._locks.hold(REFRESH_LOCK_NAME):
            await self._refresh_if_stale()

        # 锁释放后重新读取，竞争失败的调用方在这里看到胜者写入的 token
        refreshed = await asyncio.to_thread(self.store.read)
        if not refreshed.access_token:
            raise RefreshFailed("刷新 Supabase access token 失败：刷新后仍没有 access token。")
        return refreshed.access_token

    async def _refresh_if_stale(self) -> None:
        record = await asyncio.to_thread(self.store.read)
        if record.access_token and not self.is_stale(record):
            logger.debug("Supabase token already refreshed by a concurrent caller")
            return

        if not record.refresh_token:
            raise NoRefreshToken("未找到 Supabase refresh token，请先完成认证。")

        try:
            refreshed = await self._exchange(record.refresh_token)
        except RefreshFailed:
            logger.error("Error refreshing Supabase token", exc_info=True)
            raise
        await asyncio.to_thread(self.store.write, refreshed)
        logger.info("Refreshed Supabase access token (expires in %ss)", refreshed.expires_in)

    async def _exchange(self, refresh_token: str) -> CredentialRecord:
        """用 refresh token 换取新的 token 对（单次外部调用）。"""
        try:
            async with self._http_client_factory() as client:
                response = await client.post(self.refresh_url, json={"refreshToken": refresh_token})
        except httpx.HTTPError as exc:
            raise RefreshFailed(f"Supabase token 刷新请求失败：{exc}。{_RECONNECT_HINT}") from exc

        if not response.is_success:
            raise RefreshFailed(
                f"Supabase token 刷新失败。{_RECONNECT_HINT}错误状态：{response.reason_phrase}"
            )

        try:
            payload = response.json()
            access_token = payload["accessToken"]
            new_refresh_token = payload["refreshToken"]
            raw_expires_in = payload.get("expiresIn")
            expires_in = int(raw_expires_in) if raw_expires_in else None
        except (ValueError, KeyError, TypeError) as exc:
            raise RefreshFailed(f"Supabase token 刷新响应格式不正确：{exc}") from exc

        return CredentialRecord(
            access_token=access_token,
            refresh_token=new_refresh_token,
            expires_in=expires_in,
            issued_at=int(self._clock()),
        )
