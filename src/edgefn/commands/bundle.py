"""edgefn bundle 命令：把函数及其本地依赖打包成单个源文件。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from edgefn.errors import EdgeFnError
from edgefn.functions import bundle_function

from .common import APP_OPTION_HELP, console, fail, resolve_app_path


def bundle_command(
    name: str = typer.Argument(..., help="函数名称"),
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="输出文件（默认打印到标准输出）"
    ),
) -> None:
    """打包函数。"""
    app_path = resolve_app_path(app)
    try:
        result = bundle_function(app_path, name)
    except EdgeFnError as e:
        fail(e)
        return

    if output is None:
        typer.echo(result.source_text)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.source_text, encoding="utf-8")
    console.print(f"[green]✓ 已写入[/green] {output} ({len(result.source_text)} 字符)")
