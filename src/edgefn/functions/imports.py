"""导入分类：决定一个模块说明符应内联到 bundle 中，还是保留为外部导入。"""

from __future__ import annotations

import re
from enum import Enum

# 远程 / 注册表前缀，由运行时环境在执行时解析
EXTERNAL_PREFIXES = re.compile(r"^(https?:|npm:|jsr:)")

_WINDOWS_ABSOLUTE = re.compile(r"^(?:[A-Za-z]:/|//)")


class ImportKind(str, Enum):
    """导入的处理方式。"""

    INLINE = "inline"  # 合并进单个输出模块
    EXTERNAL = "external"  # 保留为 live import


def normalize_specifier(specifier: str) -> str:
    """统一路径分隔符，使分类规则与平台无关。"""
    return specifier.replace("\\", "/")


def is_relative_or_absolute(specifier: str) -> bool:
    """说明符是否为相对路径（以 . 开头）或绝对文件系统路径。"""
    normalized = normalize_specifier(specifier)
    return (
        normalized.startswith(".")
        or normalized.startswith("/")
        or bool(_WINDOWS_ABSOLUTE.match(normalized))
    )


def classify(specifier: str) -> ImportKind:
    """对模块说明符分类。

    规则（按顺序，首个匹配生效）：
    1. http(s)/npm/jsr 前缀 -> EXTERNAL
    2. 相对路径或绝对路径 -> INLINE
    3. 其他裸包名 -> EXTERNAL

    Args:
        specifier: import 语句中的模块说明符

    Returns:
        ImportKind
    """
    normalized = normalize_specifier(specifier)
    if EXTERNAL_PREFIXES.match(normalized):
        return ImportKind.EXTERNAL
    if is_relative_or_absolute(normalized):
        return ImportKind.INLINE
    return ImportKind.EXTERNAL
