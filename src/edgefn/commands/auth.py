"""edgefn auth：管理本地保存的 Supabase 凭据。"""

from __future__ import annotations

import time
from typing import Optional

import typer
from rich.table import Table

from edgefn.auth import CredentialRecord, FileCredentialStore, is_token_stale

from .common import console

app = typer.Typer(help="管理 Supabase 凭据")


def _mask(token: Optional[str]) -> str:
    if not token:
        return "[dim]-[/dim]"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}…{token[-4:]}"


@app.command("set")
def set_credentials(
    refresh_token: str = typer.Option(..., "--refresh-token", "-r", help="Supabase refresh token"),
    access_token: Optional[str] = typer.Option(None, "--access-token", help="当前 access token"),
    expires_in: Optional[int] = typer.Option(None, "--expires-in", help="access token 有效期（秒）"),
) -> None:
    """保存凭据。没有 access token 时，首次使用会自动刷新。"""
    store = FileCredentialStore()
    store.write(
        CredentialRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            issued_at=int(time.time()),
        )
    )
    console.print(f"[green]✓ 凭据已保存[/green] {store.path}")


@app.command("status")
def status() -> None:
    """显示凭据状态。"""
    store = FileCredentialStore()
    record = store.read()

    table = Table(title="Supabase 凭据", show_header=False)
    table.add_column("项", style="cyan")
    table.add_column("值")
    table.add_row("文件", str(store.path))
    table.add_row("access token", _mask(record.access_token))
    table.add_row("refresh token", _mask(record.refresh_token))

    if record.expires_in:
        remaining = record.issued_at + record.expires_in - int(time.time())
        table.add_row("剩余有效期", f"{remaining}s")
    state = "[yellow]需要刷新[/yellow]" if is_token_stale(record, time.time()) else "[green]有效[/green]"
    if not record.refresh_token and not record.access_token:
        state = "[red]未认证[/red]"
    table.add_row("状态", state)

    console.print(table)


@app.command("clear")
def clear() -> None:
    """删除本地凭据。"""
    FileCredentialStore().clear()
    console.print("[green]✓ 凭据已清除[/green]")
