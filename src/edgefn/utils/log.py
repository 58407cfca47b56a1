"""日志配置：CLI 入口通过 RichHandler 输出到终端。"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_HANDLER_NAME = "edgefn-rich"


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """为 edgefn 日志器安装 RichHandler。

    重复调用只会调整日志级别，不会重复安装 handler。
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger("edgefn")
    logger.setLevel(level)

    for handler in logger.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(level)
            return

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
