"""edgefn 错误类型。

所有组件级失败都以 EdgeFnError 子类的形式返回给调用方，
deploy/serve 命令不会吞掉这些错误。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from edgefn.supabase.process import ProcessOutcome


class EdgeFnError(Exception):
    """edgefn 所有错误的基类。"""


class CliNotFound(EdgeFnError):
    """在等待上限内没有找到 Supabase CLI。"""


class CredentialError(EdgeFnError):
    """凭据相关错误，不会自动重试，调用方需要重新认证。"""


class NoRefreshToken(CredentialError):
    """凭据存储中没有 refresh token。"""


class RefreshFailed(CredentialError):
    """refresh token 换取新 access token 失败。"""


class BundleError(EdgeFnError):
    """打包错误（配置或用户代码问题）。"""


class EntryPointMissing(BundleError):
    """函数目录下缺少 index 入口文件。"""


class BundleProducedNoOutput(BundleError):
    """打包步骤没有产生任何输出。"""


class UnresolvedImport(BundleError):
    """相对/绝对导入无法解析到文件。"""


class CircularImport(BundleError):
    """需要内联的模块之间存在循环导入。"""


class ProcessError(EdgeFnError):
    """子进程执行错误，始终附带捕获的输出。"""

    def __init__(self, message: str, outcome: ProcessOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


class SpawnError(ProcessError):
    """命令无法启动。"""


class NonZeroExit(ProcessError):
    """命令已启动，但以失败状态退出。"""


class ForcedTermination(ProcessError):
    """优雅停止超时后被强制 kill。"""


class ManagementApiError(EdgeFnError):
    """Supabase Management API 返回了非成功响应。"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
