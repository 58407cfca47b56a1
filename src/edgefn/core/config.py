"""edgefn 的配置管理。

该模块提供配置的加载、保存与管理能力。
它负责处理项目内的 .edgefn/config.yaml，并为所有设置提供默认值。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from edgefn.utils.files import get_project_config_path
from edgefn.version import CONFIG_VERSION

DEFAULT_REFRESH_URL = "https://supabase-oauth.dyad.sh/api/connect-supabase/refresh"
DEFAULT_API_BASE_URL = "https://api.supabase.com"


@dataclass
class CliConfig:
    """Supabase CLI 查找配置。

    属性：
        poll_interval_s：未找到 CLI 时的轮询间隔（秒）
        wait_timeout_s：从第一次查找开始计算的等待上限（秒）
    """

    poll_interval_s: float = 1.0
    wait_timeout_s: float = 300.0

    def to_dict(self) -> dict[str, Any]:
        """转换为字典以便 YAML 序列化。"""
        return {
            "poll_interval_s": self.poll_interval_s,
            "wait_timeout_s": self.wait_timeout_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CliConfig":
        """从字典创建实例。"""
        return cls(
            poll_interval_s=float(data.get("poll_interval_s", 1.0)),
            wait_timeout_s=float(data.get("wait_timeout_s", 300.0)),
        )


@dataclass
class ServeConfig:
    """本地 serve 的时间盒配置。

    属性：
        run_duration_s：发送优雅停止信号前的运行时长（秒）
        force_kill_delay_s：优雅停止之后到强制 kill 的宽限期（秒）
    """

    run_duration_s: float = 10.0
    force_kill_delay_s: float = 4.0

    def to_dict(self) -> dict[str, Any]:
        """转换为字典以便 YAML 序列化。"""
        return {
            "run_duration_s": self.run_duration_s,
            "force_kill_delay_s": self.force_kill_delay_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServeConfig":
        """从字典创建实例。"""
        return cls(
            run_duration_s=float(data.get("run_duration_s", 10.0)),
            force_kill_delay_s=float(data.get("force_kill_delay_s", 4.0)),
        )


@dataclass
class AuthConfig:
    """OAuth token 刷新配置。

    属性：
        refresh_url：refresh token 换取 access token 的端点
        safety_margin_s：提前刷新的安全余量（秒）
        timeout_s：刷新请求超时（秒）
    """

    refresh_url: str = DEFAULT_REFRESH_URL
    safety_margin_s: int = 300
    timeout_s: float = 30.0

    def to_dict(self) -> dict[str, Any]:
        """转换为字典以便 YAML 序列化。"""
        return {
            "refresh_url": self.refresh_url,
            "safety_margin_s": self.safety_margin_s,
            "timeout_s": self.timeout_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthConfig":
        """从字典创建实例。"""
        return cls(
            refresh_url=data.get("refresh_url", DEFAULT_REFRESH_URL),
            safety_margin_s=int(data.get("safety_margin_s", 300)),
            timeout_s=float(data.get("timeout_s", 30.0)),
        )


@dataclass
class ApiConfig:
    """Supabase Management API 配置。"""

    base_url: str = DEFAULT_API_BASE_URL
    timeout_s: float = 30.0

    def to_dict(self) -> dict[str, Any]:
        """转换为字典以便 YAML 序列化。"""
        return {
            "base_url": self.base_url,
            "timeout_s": self.timeout_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApiConfig":
        """从字典创建实例。"""
        return cls(
            base_url=data.get("base_url", DEFAULT_API_BASE_URL),
            timeout_s=float(data.get("timeout_s", 30.0)),
        )


@dataclass
class Config:
    """edgefn 的主配置。

    属性：
        version：配置文件格式版本
        cli：Supabase CLI 查找配置
        serve：本地 serve 配置
        auth：token 刷新配置
        api：Management API 配置
    """

    version: str = CONFIG_VERSION
    cli: CliConfig = field(default_factory=CliConfig)
    serve: ServeConfig = field(default_factory=ServeConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    def to_dict(self) -> dict[str, Any]:
        """将 Config 转换为字典以便 YAML 序列化。

        返回：
            配置的字典表示
        """
        return {
            "version": self.version,
            "cli": self.cli.to_dict(),
            "serve": self.serve.to_dict(),
            "auth": self.auth.to_dict(),
            "api": self.api.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """从 YAML 读取的字典创建 Config。

        缺失的分组使用默认值。

        参数：
            data：从 config.yaml 读取的字典

        返回：
            Config 实例
        """
        return cls(
            version=str(data.get("version", CONFIG_VERSION)),
            cli=CliConfig.from_dict(data.get("cli") or {}),
            serve=ServeConfig.from_dict(data.get("serve") or {}),
            auth=AuthConfig.from_dict(data.get("auth") or {}),
            api=ApiConfig.from_dict(data.get("api") or {}),
        )


def load_config(config_path: Path) -> Config:
    """从 YAML 文件加载配置。

    参数：
        config_path：config.yaml 文件路径

    返回：
        加载后的 Config 实例（缺失字段使用默认值）

    异常：
        FileNotFoundError：配置文件不存在
        yaml.YAMLError：配置文件内容不合法
    """
    if not config_path.exists():
        raise FileNotFoundError(f"未找到配置文件：{config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    return Config.from_dict(data)


def save_config(config: Config, config_path: Path) -> None:
    """将配置保存到 YAML 文件。

    参数：
        config：要保存的 Config 实例
        config_path：config.yaml 文件路径

    异常：
        OSError：无法写入文件
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            config.to_dict(),
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )


def load_project_config(app_path: Path) -> Config:
    """加载项目配置；项目未提供 config.yaml 时返回默认配置。"""
    config_path = get_project_config_path(app_path)
    if not config_path.exists():
        return Config()
    return load_config(config_path)
