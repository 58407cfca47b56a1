"""Supabase CLI 编排：CLI 查找、子进程监管、部署流水线与 Management API。"""

from .locator import CLI_PATH_ENV, CliLocation, CliLocator, CliSource, quote_command
from .management import ManagementClient
from .pipeline import ACCESS_TOKEN_ENV, DeploymentPipeline
from .process import CliCommand, ProcessOutcome, ProcessSupervisor, SupervisorState

__all__ = [
    "ACCESS_TOKEN_ENV",
    "CLI_PATH_ENV",
    "CliCommand",
    "CliLocation",
    "CliLocator",
    "CliSource",
    "DeploymentPipeline",
    "ManagementClient",
    "ProcessOutcome",
    "ProcessSupervisor",
    "SupervisorState",
    "quote_command",
]
