"""命令之间共用的装配逻辑。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from edgefn.auth import FileCredentialStore, TokenManager
from edgefn.core.config import Config, load_project_config
from edgefn.errors import EdgeFnError
from edgefn.supabase import CliLocator, DeploymentPipeline, ManagementClient, ProcessSupervisor

console = Console()

APP_OPTION_HELP = "应用根目录（默认当前目录）"


def resolve_app_path(app: Optional[Path]) -> Path:
    """获取应用根目录。"""
    return (app or Path.cwd()).resolve()


def load_config_or_exit(app_path: Path) -> Config:
    try:
        return load_project_config(app_path)
    except Exception as e:
        console.print(f"[red]错误：[/red] 无法读取项目配置：{escape(str(e))}")
        raise typer.Exit(1)


def build_token_manager(config: Config) -> TokenManager:
    return TokenManager(
        FileCredentialStore(),
        refresh_url=config.auth.refresh_url,
        safety_margin_s=config.auth.safety_margin_s,
        timeout_s=config.auth.timeout_s,
    )


def build_pipeline(config: Config) -> DeploymentPipeline:
    return DeploymentPipeline(
        build_token_manager(config),
        locator=CliLocator(
            poll_interval_s=config.cli.poll_interval_s,
            wait_timeout_s=config.cli.wait_timeout_s,
        ),
        supervisor=ProcessSupervisor(
            run_duration_s=config.serve.run_duration_s,
            force_kill_delay_s=config.serve.force_kill_delay_s,
        ),
    )


def build_management_client(config: Config) -> ManagementClient:
    return ManagementClient(
        build_token_manager(config),
        base_url=config.api.base_url,
        timeout_s=config.api.timeout_s,
    )


def fail(error: EdgeFnError) -> None:
    """打印错误并以退出码 1 结束命令。"""
    console.print(f"[red]错误：[/red] {escape(str(error))}", highlight=False)
    raise typer.Exit(1)
