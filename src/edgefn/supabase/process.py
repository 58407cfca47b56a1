"""子进程监管。

两种调用形态共享同一套机制：

- run()：部署形态，运行到结束，没有时间上限，退出码 0 即成功
- run_bounded()：本地 serve 形态，运行 run_duration_s 后发送优雅停止信号，
  宽限期 force_kill_delay_s 后仍未退出则强制 kill

监管过程是一个显式状态机：
RUNNING -> GRACE_PERIOD -> FORCE_KILLED -> EXITED，
由子进程退出或计时器到期（先到者）驱动；进入 EXITED 时不再有待触发的计时器。
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping

from edgefn.errors import ForcedTermination, NonZeroExit, SpawnError

from .locator import CliLocation

logger = logging.getLogger(__name__)

RUN_DURATION_S = 10.0
FORCE_KILL_DELAY_S = 4.0
STREAM_DRAIN_TIMEOUT_S = 5.0
STREAM_LIMIT = 1024 * 1024

# 被监管者主动停止时视为成功的信号 / shell 退出码（128 + 信号值）
INTENTIONAL_STOP_SIGNALS = frozenset({"SIGTERM", "SIGINT"})
INTENTIONAL_STOP_EXIT_CODES = frozenset({128 + 15, 128 + 2})

# Windows：新进程组里的 CTRL_BREAK 会送达 cmd.exe 及其启动的 CLI
_CTRL_BREAK = getattr(signal, "CTRL_BREAK_EVENT", 1)
_CREATE_NEW_PROCESS_GROUP = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0x200)


class SupervisorState(str, Enum):
    """监管状态。"""

    RUNNING = "running"
    GRACE_PERIOD = "grace_period"
    FORCE_KILLED = "force_killed"
    EXITED = "exited"


@dataclass(frozen=True)
class CliCommand:
    """结构化命令：CLI 位置 + 参数列表，只在 spawn 边界序列化为 shell 字符串。"""

    location: CliLocation
    args: tuple[str, ...]

    def to_shell(self) -> str:
        if os.name == "nt":
            rendered = subprocess.list2cmdline(list(self.args))
        else:
            rendered = " ".join(shlex.quote(arg) for arg in self.args)
        return f"{self.location.command} {rendered}" if rendered else self.location.command


@dataclass(frozen=True)
class ProcessOutcome:
    """一次监管调用的结果，子进程退出后不再变化。"""

    exit_code: int | None
    termination_signal: str | None
    stdout: str
    stderr: str
    states: tuple[SupervisorState, ...] = (SupervisorState.RUNNING, SupervisorState.EXITED)

    @property
    def stopped_by_supervisor(self) -> bool:
        return SupervisorState.GRACE_PERIOD in self.states

    @property
    def forced(self) -> bool:
        return SupervisorState.FORCE_KILLED in self.states

    def describe_exit(self) -> str:
        if self.exit_code is not None:
            return f"exit code {self.exit_code}"
        if self.termination_signal:
            return f"signal {self.termination_signal}"
        return "unknown exit"


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


def _format_failure(prefix: str, detail: str, stdout: str, stderr: str) -> str:
    return f"{prefix} ({detail})\n\nSTDOUT:\n{stdout}\n\nSTDERR:\n{stderr}"


def _spawn_options(windows: bool) -> dict[str, int | bool]:
    """子进程独立成组，停止时可以连同孙进程一起处理。"""
    if windows:
        return {"creationflags": _CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _kill_tree(pid: int) -> bool:
    """用 taskkill /T 结束整棵进程树，taskkill 不可用时返回 False。"""
    try:
        result = subprocess.run(
            ["taskkill", "/T", "/F", "/PID", str(pid)],
            capture_output=True,
            check=False,
        )
    except OSError:
        return False
    if result.returncode != 0:
        logger.debug("taskkill exited with %s for pid=%s", result.returncode, pid)
    return True


class _Supervision:
    """驱动单个子进程的状态机。"""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        run_duration_s: float | None,
        force_kill_delay_s: float,
        windows: bool = os.name == "nt",
    ) -> None:
        self.process = process
        self.windows = windows
        self.run_duration_s = run_duration_s
        self.force_kill_delay_s = force_kill_delay_s
        self.state = SupervisorState.RUNNING
        self.history: list[SupervisorState] = [SupervisorState.RUNNING]

    def _transition(self, state: SupervisorState) -> None:
        logger.debug("Supervisor state %s -> %s (pid=%s)", self.state.value, state.value, self.process.pid)
        self.state = state
        self.history.append(state)

    def _send(self, *, force: bool) -> None:
        if self.process.returncode is not None:
            return
        try:
            if self.windows:
                if not force:
                    self.process.send_signal(_CTRL_BREAK)
                elif not _kill_tree(self.process.pid):
                    self.process.kill()
            else:
                os.killpg(self.process.pid, signal.SIGKILL if force else signal.SIGTERM)
        except ProcessLookupError:
            pass

    async def _exited_within(self, exit_task: asyncio.Future[int], timeout: float) -> bool:
        done, _ = await asyncio.wait({exit_task}, timeout=timeout)
        return bool(done)

    async def wait(self) -> int:
        exit_task = asyncio.ensure_future(self.process.wait())
        try:
            if self.run_duration_s is not None:
                if not await self._exited_within(exit_task, self.run_duration_s):
                    logger.info("Stopping command after %ss", self.run_duration_s)
                    self._transition(SupervisorState.GRACE_PERIOD)
                    self._send(force=False)
                    if not await self._exited_within(exit_task, self.force_kill_delay_s):
                        logger.warning("Process did not terminate gracefully; forcing exit.")
                        self._transition(SupervisorState.FORCE_KILLED)
                        self._send(force=True)
            returncode = await exit_task
        except asyncio.CancelledError:
            self._send(force=True)
            raise
        self._transition(SupervisorState.EXITED)
        return returncode

    def outcome(self, returncode: int, stdout: str, stderr: str) -> ProcessOutcome:
        exit_code: int | None = returncode
        termination_signal: str | None = None
        if returncode < 0:
            exit_code = None
            termination_signal = _signal_name(returncode)
        elif self.windows and SupervisorState.GRACE_PERIOD in self.history:
            exit_code = None
            termination_signal = "SIGKILL" if SupervisorState.FORCE_KILLED in self.history else "SIGTERM"
        return ProcessOutcome(
            exit_code=exit_code,
            termination_signal=termination_signal,
            stdout=stdout,
            stderr=stderr,
            states=tuple(self.history),
        )


async def _pump(stream: asyncio.StreamReader | None, sink: list[str], level: int) -> None:
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            break
        line = raw.decode("utf-8", errors="replace")
        sink.append(line)
        logger.log(level, line.rstrip("\r\n"))


class ProcessSupervisor:
    """启动 shell 命令、转发输出、限制运行时长并分类退出结果。"""

    def __init__(
        self,
        *,
        run_duration_s: float = RUN_DURATION_S,
        force_kill_delay_s: float = FORCE_KILL_DELAY_S,
    ) -> None:
        self.run_duration_s = run_duration_s
        self.force_kill_delay_s = force_kill_delay_s

    async def run(
        self,
        command: str | CliCommand,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        success_message: str = "Command completed",
        error_prefix: str = "Command failed",
    ) -> ProcessOutcome:
        """部署形态：运行到结束，退出码 0 视为成功。

        Raises:
            SpawnError: 命令无法启动
            NonZeroExit: 命令以非 0 状态退出（包括被信号终止）
        """
        outcome = await self._execute(command, cwd=cwd, env=env, run_duration_s=None, error_prefix=error_prefix)
        if outcome.exit_code == 0:
            logger.info(success_message)
            return outcome
        raise NonZeroExit(
            _format_failure(error_prefix, outcome.describe_exit(), outcome.stdout, outcome.stderr),
            outcome,
        )

    async def run_bounded(
        self,
        command: str | CliCommand,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        success_message: str = "Command completed",
        error_prefix: str = "Command failed",
    ) -> ProcessOutcome:
        """serve 形态：时间盒运行，监管者自己的优雅停止视为成功。

        Raises:
            SpawnError: 命令无法启动
            ForcedTermination: 宽限期内未退出，被强制 kill
            NonZeroExit: 其他失败退出
        """
        outcome = await self._execute(
            command,
            cwd=cwd,
            env=env,
            run_duration_s=self.run_duration_s,
            error_prefix=error_prefix,
        )
        if outcome.exit_code == 0 or self._stopped_intentionally(outcome):
            logger.info(success_message)
            return outcome

        message = _format_failure(error_prefix, outcome.describe_exit(), outcome.stdout, outcome.stderr)
        if outcome.forced:
            raise ForcedTermination(message, outcome)
        raise NonZeroExit(message, outcome)

    @staticmethod
    def _stopped_intentionally(outcome: ProcessOutcome) -> bool:
        if not outcome.stopped_by_supervisor or outcome.forced:
            return False
        return (
            outcome.termination_signal in INTENTIONAL_STOP_SIGNALS
            or outcome.exit_code in INTENTIONAL_STOP_EXIT_CODES
        )

    async def _execute(
        self,
        command: str | CliCommand,
        *,
        cwd: Path,
        env: Mapping[str, str] | None,
        run_duration_s: float | None,
        error_prefix: str,
    ) -> ProcessOutcome:
        shell_command = command.to_shell() if isinstance(command, CliCommand) else command
        logger.info("Running: %s", shell_command)

        try:
            process = await asyncio.create_subprocess_shell(
                shell_command,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                **_spawn_options(os.name == "nt"),
            )
        except OSError as exc:
            raise SpawnError(_format_failure(error_prefix, str(exc), "", "")) from exc

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        pumps = [
            asyncio.ensure_future(_pump(process.stdout, stdout_lines, logging.INFO)),
            asyncio.ensure_future(_pump(process.stderr, stderr_lines, logging.WARNING)),
        ]

        supervision = _Supervision(
            process,
            run_duration_s=run_duration_s,
            force_kill_delay_s=self.force_kill_delay_s,
        )
        try:
            returncode = await supervision.wait()
        finally:
            # 孙进程可能仍持有管道，最多再等一小段时间
            _, pending = await asyncio.wait(pumps, timeout=STREAM_DRAIN_TIMEOUT_S)
            for task in pending:
                task.cancel()

        return supervision.outcome(returncode, "".join(stdout_lines), "".join(stderr_lines))
