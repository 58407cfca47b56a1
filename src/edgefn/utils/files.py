"""edgefn 的文件系统工具。

本模块提供 edgefn 用户目录与项目目录相关路径的辅助函数。
"""

import os
from pathlib import Path


def get_edgefn_home() -> Path:
    """获取 edgefn 用户目录（默认 ~/.edgefn）。

    优先级：
    1. EDGEFN_HOME 环境变量
    2. USERPROFILE / HOME 下的 .edgefn
    """
    override = (os.environ.get("EDGEFN_HOME") or "").strip()
    if override:
        return Path(override)
    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or str(Path.home())
    return Path(home) / ".edgefn"


def get_credentials_path() -> Path:
    """获取凭据文件路径。

    返回：
        credentials.json 文件路径
    """
    return get_edgefn_home() / "credentials.json"


def get_project_dir(app_path: Path) -> Path:
    """获取项目内的 .edgefn 目录路径。"""
    return app_path / ".edgefn"


def get_project_config_path(app_path: Path) -> Path:
    """获取项目 config.yaml 文件路径。

    参数：
        app_path: 应用根目录

    返回：
        config.yaml 文件路径
    """
    return get_project_dir(app_path) / "config.yaml"
