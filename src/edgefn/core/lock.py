"""按名称划分的互斥锁。

同名锁在同一个事件循环内互斥，用于串行化 "刷新并写回 token" 这类
只允许一个调用方执行的动作。读取仍然有效的 token 不需要加锁。
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class NamedLocks:
    """命名锁注册表。

    锁按 (事件循环, 名称) 懒创建，避免 asyncio.Lock 跨事件循环复用。
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
        ] = weakref.WeakKeyDictionary()

    def get(self, name: str) -> asyncio.Lock:
        """获取（必要时创建）当前事件循环下的命名锁。

        参数：
            name: 锁名称

        返回：
            asyncio.Lock 实例
        """
        loop = asyncio.get_running_loop()
        per_loop = self._locks.setdefault(loop, {})
        lock = per_loop.get(name)
        if lock is None:
            lock = asyncio.Lock()
            per_loop[name] = lock
        return lock

    def is_locked(self, name: str) -> bool:
        """检查命名锁当前是否被持有。"""
        loop = asyncio.get_running_loop()
        lock = self._locks.get(loop, {}).get(name)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        """持有命名锁直到退出上下文。"""
        lock = self.get(name)
        async with lock:
            yield


_default_locks = NamedLocks()


def get_default_locks() -> NamedLocks:
    """返回进程内共享的默认锁注册表。"""
    return _default_locks


def with_lock(name: str):
    """在默认注册表上持有命名锁。

    用法::

        async with with_lock("refresh-supabase-token"):
            ...
    """
    return _default_locks.hold(name)
