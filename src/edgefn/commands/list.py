"""edgefn list 命令。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from edgefn.functions import FunctionDescriptor, list_function_names
from edgefn.functions.layout import get_functions_root

from .common import APP_OPTION_HELP, console, resolve_app_path


def list_command(
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
) -> None:
    """列出 supabase/functions 下的函数（不含 _shared）。"""
    app_path = resolve_app_path(app)
    names = list_function_names(app_path)

    if not names:
        console.print(f"[dim]没有函数：{get_functions_root(app_path)}[/dim]")
        return

    table = Table(title="Supabase 函数")
    table.add_column("名称", style="cyan")
    table.add_column("入口文件")

    for name in names:
        entry = FunctionDescriptor(function_name=name, app_path=app_path).find_entry_point()
        if entry is None:
            table.add_row(name, "[red]缺失[/red]")
        else:
            table.add_row(name, entry.name)

    console.print(table)
