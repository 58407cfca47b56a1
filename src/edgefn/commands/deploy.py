"""edgefn deploy / serve 命令。"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from edgefn.errors import EdgeFnError
from edgefn.functions import FunctionDescriptor

from .common import APP_OPTION_HELP, build_pipeline, console, fail, load_config_or_exit, resolve_app_path


def deploy_command(
    name: str = typer.Argument(..., help="函数名称（supabase/functions 下的目录名）"),
    project_ref: str = typer.Option(..., "--project-ref", "-p", help="Supabase 项目 ID"),
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
) -> None:
    """通过 Supabase CLI 部署函数。"""
    app_path = resolve_app_path(app)
    config = load_config_or_exit(app_path)
    pipeline = build_pipeline(config)

    console.print(f"[cyan]部署函数:[/cyan] {name} -> {project_ref}")
    try:
        outcome = asyncio.run(pipeline.deploy(project_ref, name, app_path))
    except EdgeFnError as e:
        fail(e)
        return

    console.print(f"[green]✓ 部署完成[/green] ({outcome.describe_exit()})")


def serve_command(
    name: str = typer.Argument(..., help="函数名称"),
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
) -> None:
    """在本地短时间 serve 函数，做冒烟测试。"""
    app_path = resolve_app_path(app)
    config = load_config_or_exit(app_path)

    descriptor = FunctionDescriptor(function_name=name, app_path=app_path)
    if descriptor.find_entry_point() is None:
        console.print(f"[yellow]警告：[/yellow] 未找到入口文件 {descriptor.expected_entry_point}")

    pipeline = build_pipeline(config)
    console.print(f"[cyan]本地 serve:[/cyan] {name}（{config.serve.run_duration_s:g}s）")
    try:
        outcome = asyncio.run(pipeline.serve(name, app_path))
    except EdgeFnError as e:
        fail(e)
        return

    console.print(f"[green]✓ serve 完成[/green] ({outcome.describe_exit()})")
