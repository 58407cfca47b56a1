"""Token 刷新测试。"""

import asyncio
import json
import threading

import httpx
import pytest

from edgefn.auth import CredentialRecord, TokenManager, is_token_stale
from edgefn.core.lock import NamedLocks
from edgefn.errors import NoRefreshToken, RefreshFailed

from helpers import MemoryCredentialStore

NOW = 1_700_000_000
REFRESH_URL = "https://oauth.test/api/connect-supabase/refresh"


class RefreshEndpoint:
    """模拟刷新端点，统计调用次数。"""

    def __init__(self, status_code: int = 200, delay: float = 0.0) -> None:
        self.status_code = status_code
        self.delay = delay
        self.calls: list[dict] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(json.loads(request.content))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status_code != 200:
            return httpx.Response(self.status_code)
        return httpx.Response(
            200,
            json={"accessToken": "new-access", "refreshToken": "new-refresh", "expiresIn": 3600},
        )


def make_manager(store, endpoint: RefreshEndpoint) -> TokenManager:
    return TokenManager(
        store,
        refresh_url=REFRESH_URL,
        locks=NamedLocks(),
        http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(endpoint)),
        clock=lambda: NOW,
    )


def stale_record() -> CredentialRecord:
    # 到期还剩 3600 - 4000 = -400 秒
    return CredentialRecord(
        access_token="old-access",
        refresh_token="old-refresh",
        expires_in=3600,
        issued_at=NOW - 4000,
    )


class TestIsTokenStale:
    """测试过期判断。"""

    def test_missing_expiry_is_stale(self):
        assert is_token_stale(CredentialRecord(access_token="a"), NOW) is True

    def test_inside_safety_margin_is_stale(self):
        record = CredentialRecord(access_token="a", expires_in=3600, issued_at=NOW - 3400)
        assert is_token_stale(record, NOW) is True

    def test_outside_safety_margin_is_fresh(self):
        record = CredentialRecord(access_token="a", expires_in=3600, issued_at=NOW - 60)
        assert is_token_stale(record, NOW) is False


class TestEnsureValidAccessToken:
    """测试 ensure_valid_access_token。"""

    @pytest.mark.asyncio
    async def test_stale_token_is_refreshed_once(self):
        store = MemoryCredentialStore(stale_record())
        endpoint = RefreshEndpoint()

        token = await make_manager(store, endpoint).ensure_valid_access_token()

        assert token == "new-access"
        assert endpoint.calls == [{"refreshToken": "old-refresh"}]
        assert store.writes == [
            CredentialRecord(
                access_token="new-access",
                refresh_token="new-refresh",
                expires_in=3600,
                issued_at=NOW,
            )
        ]

    @pytest.mark.asyncio
    async def test_fresh_token_is_returned_without_refresh(self):
        record = CredentialRecord(access_token="fresh", refresh_token="r", expires_in=3600, issued_at=NOW - 60)
        store = MemoryCredentialStore(record)
        endpoint = RefreshEndpoint()

        token = await make_manager(store, endpoint).ensure_valid_access_token()

        assert token == "fresh"
        assert endpoint.calls == []
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        store = MemoryCredentialStore(stale_record())
        endpoint = RefreshEndpoint(delay=0.05)
        manager = make_manager(store, endpoint)

        tokens = await asyncio.gather(
            manager.ensure_valid_access_token(),
            manager.ensure_valid_access_token(),
        )

        assert tokens == ["new-access", "new-access"]
        assert len(endpoint.calls) == 1
        assert len(store.writes) == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_store_untouched(self):
        original = stale_record()
        store = MemoryCredentialStore(original)

        with pytest.raises(RefreshFailed) as exc_info:
            await make_manager(store, RefreshEndpoint(status_code=500)).ensure_valid_access_token()

        assert "Internal Server Error" in str(exc_info.value)
        assert store.record == original
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self):
        store = MemoryCredentialStore(CredentialRecord(access_token="old", expires_in=None))
        endpoint = RefreshEndpoint()

        with pytest.raises(NoRefreshToken):
            await make_manager(store, endpoint).ensure_valid_access_token()

        assert endpoint.calls == []

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        store = MemoryCredentialStore(stale_record())

        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        manager = TokenManager(
            store,
            locks=NamedLocks(),
            http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            clock=lambda: NOW,
        )

        with pytest.raises(RefreshFailed):
            await manager.ensure_valid_access_token()
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_transport_error(self):
        store = MemoryCredentialStore(stale_record())

        async def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        manager = TokenManager(
            store,
            locks=NamedLocks(),
            http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            clock=lambda: NOW,
        )

        with pytest.raises(RefreshFailed) as exc_info:
            await manager.ensure_valid_access_token()
        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_numeric_expiry_is_refresh_failure(self):
        original = stale_record()
        store = MemoryCredentialStore(original)

        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"accessToken": "new-access", "refreshToken": "new-refresh", "expiresIn": "soon"},
            )

        manager = TokenManager(
            store,
            locks=NamedLocks(),
            http_client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            clock=lambda: NOW,
        )

        with pytest.raises(RefreshFailed) as exc_info:
            await manager.ensure_valid_access_token()
        assert "soon" in str(exc_info.value)
        assert store.record == original
        assert store.writes == []


class ThreadRecordingStore(MemoryCredentialStore):
    """记录每次读写所在线程的内存凭据存储。"""

    def __init__(self, record: CredentialRecord | None = None) -> None:
        super().__init__(record)
        self.threads: list[int] = []

    def read(self) -> CredentialRecord:
        self.threads.append(threading.get_ident())
        return super().read()

    def write(self, record: CredentialRecord) -> None:
        self.threads.append(threading.get_ident())
        super().write(record)


class TestStoreAccess:
    """凭据存储的读写不在事件循环线程上执行。"""

    @pytest.mark.asyncio
    async def test_store_io_runs_off_event_loop_thread(self):
        store = ThreadRecordingStore(stale_record())

        token = await make_manager(store, RefreshEndpoint()).ensure_valid_access_token()

        assert token == "new-access"
        # 首次读取、锁内复查、刷新写回、锁后重读
        assert len(store.threads) == 4
        assert threading.get_ident() not in store.threads
