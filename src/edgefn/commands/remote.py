"""通过 Supabase Management API 操作远端项目的命令。"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from edgefn.errors import EdgeFnError

from .common import (
    APP_OPTION_HELP,
    build_management_client,
    console,
    fail,
    load_config_or_exit,
    resolve_app_path,
)


def delete_command(
    name: str = typer.Argument(..., help="函数名称"),
    project_ref: str = typer.Option(..., "--project-ref", "-p", help="Supabase 项目 ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认"),
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
) -> None:
    """删除远端已部署的函数。"""
    client = build_management_client(load_config_or_exit(resolve_app_path(app)))

    if not yes and not typer.confirm(f"确认从项目 {project_ref} 删除函数 {name}？"):
        console.print("[dim]已取消[/dim]")
        raise typer.Exit(0)

    try:
        asyncio.run(client.delete_function(project_ref, name))
    except EdgeFnError as e:
        fail(e)
        return

    console.print(f"[green]✓ 已删除[/green] {name}")


def sql_command(
    project_ref: str = typer.Argument(..., help="Supabase 项目 ID"),
    query: str = typer.Argument(..., help="SQL 语句"),
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
) -> None:
    """在项目数据库上执行 SQL，输出 JSON 结果。"""
    client = build_management_client(load_config_or_exit(resolve_app_path(app)))
    try:
        result = asyncio.run(client.run_query(project_ref, query))
    except EdgeFnError as e:
        fail(e)
        return

    typer.echo(result)


def branches_command(
    project_ref: str = typer.Argument(..., help="Supabase 项目 ID"),
    app: Optional[Path] = typer.Option(None, "--app", "-a", help=APP_OPTION_HELP),
) -> None:
    """列出项目的分支。"""
    client = build_management_client(load_config_or_exit(resolve_app_path(app)))

    async def _load() -> tuple[str, list]:
        project_name = await client.get_project_name(project_ref)
        return project_name, await client.list_branches(project_ref)

    try:
        project_name, branches = asyncio.run(_load())
    except EdgeFnError as e:
        fail(e)
        return

    console.print(f"[cyan]项目:[/cyan] {project_name}")
    if not branches:
        console.print("[dim]没有分支[/dim]")
        return
    for branch in branches:
        marker = " [green](default)[/green]" if branch.get("is_default") else ""
        console.print(f"  • {branch.get('name', '?')}{marker}")
