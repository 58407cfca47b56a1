"""Supabase 函数：目录布局、导入分类与打包。"""

from .bundler import BundleResult, Bundler, bundle_function
from .imports import ImportKind, classify
from .layout import (
    FunctionDescriptor,
    get_function_name,
    is_server_function,
    is_shared_path,
    list_function_names,
)

__all__ = [
    "BundleResult",
    "Bundler",
    "FunctionDescriptor",
    "ImportKind",
    "bundle_function",
    "classify",
    "get_function_name",
    "is_server_function",
    "is_shared_path",
    "list_function_names",
]
