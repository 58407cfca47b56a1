"""部署流水线：组合 TokenManager、CliLocator 与 ProcessSupervisor。"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from edgefn.auth.tokens import TokenManager

from .locator import CliLocation, CliLocator
from .process import CliCommand, ProcessOutcome, ProcessSupervisor

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = "SUPABASE_ACCESS_TOKEN"


def build_deploy_command(location: CliLocation, function_name: str, project_id: str) -> CliCommand:
    return CliCommand(
        location=location,
        args=("functions", "deploy", function_name, "--project-ref", project_id, "--no-verify-jwt"),
    )


def build_serve_command(location: CliLocation, function_name: str) -> CliCommand:
    return CliCommand(
        location=location,
        args=("functions", "serve", function_name, "--no-verify-jwt"),
    )


class DeploymentPipeline:
    """部署或本地 serve 一个 Supabase 函数。

    失败不会被吞掉：各组件抛出的 EdgeFnError 原样传给调用方。
    """

    def __init__(
        self,
        token_manager: TokenManager,
        *,
        locator: CliLocator | None = None,
        supervisor: ProcessSupervisor | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.token_manager = token_manager
        self.locator = locator or CliLocator()
        self.supervisor = supervisor or ProcessSupervisor()
        self._base_env = base_env

    def _environment(self) -> dict[str, str]:
        return dict(os.environ if self._base_env is None else self._base_env)

    async def deploy(self, project_id: str, function_name: str, app_path: Path) -> ProcessOutcome:
        """部署函数到指定项目。

        access token 只通过子进程环境变量 SUPABASE_ACCESS_TOKEN 传递，
        不出现在命令行参数中。
        """
        logger.info("Deploying Supabase function: %s to project: %s", function_name, project_id)
        access_token = await self.token_manager.ensure_valid_access_token()

        env = self._environment()
        location = await self.locator.resolve(app_path, env=env)
        env[ACCESS_TOKEN_ENV] = access_token

        return await self.supervisor.run(
            build_deploy_command(location, function_name, project_id),
            cwd=app_path,
            env=env,
            success_message=f"Deployed Supabase function {function_name} via Supabase CLI",
            error_prefix=f"Failed to deploy Supabase function {function_name}",
        )

    async def serve(self, function_name: str, app_path: Path) -> ProcessOutcome:
        """本地 serve 函数做冒烟测试（不需要 token）。"""
        logger.info("Serving Supabase function locally: %s", function_name)
        env = self._environment()
        location = await self.locator.resolve(app_path, env=env)

        return await self.supervisor.run_bounded(
            build_serve_command(location, function_name),
            cwd=app_path,
            env=env,
            success_message=f"Served Supabase function {function_name} locally via Supabase CLI",
            error_prefix=f"Failed to serve Supabase function {function_name}",
        )
