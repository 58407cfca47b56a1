"""Supabase 函数目录布局。

函数位于 <app>/supabase/functions/<name>/，每个函数目录包含 index 入口文件；
_shared 目录存放所有函数共享的代码，不属于可部署函数。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

FUNCTIONS_DIR = Path("supabase", "functions")
FUNCTIONS_PREFIX = "supabase/functions/"
SHARED_DIRECTORY = "_shared"
SHARED_PREFIX = FUNCTIONS_PREFIX + SHARED_DIRECTORY + "/"

ENTRY_CANDIDATES = ("index.ts", "index.tsx", "index.js", "index.mjs")


def _to_posix(file_path: str | Path) -> str:
    return str(file_path).replace("\\", "/")


def get_functions_root(app_path: Path) -> Path:
    """返回应用内的函数根目录。"""
    return Path(app_path) / FUNCTIONS_DIR


@dataclass(frozen=True)
class FunctionDescriptor:
    """标识一个函数的源码目录。"""

    function_name: str
    app_path: Path

    @property
    def function_dir(self) -> Path:
        return get_functions_root(self.app_path) / self.function_name

    @property
    def expected_entry_point(self) -> Path:
        """默认入口文件路径（用于错误信息）。"""
        return self.function_dir / ENTRY_CANDIDATES[0]

    def find_entry_point(self) -> Path | None:
        """按优先级查找入口文件，找不到返回 None。"""
        for candidate in ENTRY_CANDIDATES:
            entry = self.function_dir / candidate
            if entry.is_file():
                return entry
        return None


def get_function_name(file_path: str | Path) -> str | None:
    """从项目相对路径推断函数名。

    Args:
        file_path: 相对于应用根目录的路径

    Returns:
        函数名；共享目录或非函数路径返回 None
    """
    normalized = _to_posix(file_path)
    if not normalized.startswith(FUNCTIONS_PREFIX):
        return None

    relative = normalized[len(FUNCTIONS_PREFIX):]
    if not relative:
        return None

    segments = relative.split("/")
    first = segments[0]
    if not first or first == SHARED_DIRECTORY:
        return None

    if len(segments) == 1:
        stem = PurePosixPath(first).stem
        return None if stem == SHARED_DIRECTORY else stem

    return first


def is_server_function(file_path: str | Path) -> bool:
    return get_function_name(file_path) is not None


def is_shared_path(file_path: str | Path) -> bool:
    """路径是否位于共享目录 supabase/functions/_shared 中。"""
    normalized = _to_posix(file_path)
    return normalized == FUNCTIONS_PREFIX + SHARED_DIRECTORY or normalized.startswith(SHARED_PREFIX)


def list_function_names(app_path: Path) -> list[str]:
    """列出可部署的函数名（排序，排除 _shared）。

    函数根目录不存在时返回空列表。
    """
    functions_root = get_functions_root(app_path)
    if not functions_root.is_dir():
        return []
    return sorted(
        entry.name
        for entry in functions_root.iterdir()
        if entry.is_dir() and entry.name != SHARED_DIRECTORY
    )
