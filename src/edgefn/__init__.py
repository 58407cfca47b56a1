"""edgefn: 打包、部署并在本地冒烟测试 Supabase Edge Functions 的 CLI 工具。"""

import typer
from rich.console import Console

from edgefn.commands import auth as auth_cmd
from edgefn.commands import bundle as bundle_cmd
from edgefn.commands import deploy as deploy_cmd
from edgefn.commands import list as list_cmd
from edgefn.commands import remote as remote_cmd
from edgefn.utils.log import configure_logging
from edgefn.version import CONFIG_VERSION, PACKAGE_VERSION

__version__ = PACKAGE_VERSION

app = typer.Typer(
    name="edgefn",
    help="打包、部署并在本地冒烟测试 Supabase Edge Functions",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-V", help="显示版本信息"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """edgefn: Supabase Edge Functions 工具链。"""
    if version:
        console.print(f"[bold]edgefn[/bold] 版本 {__version__}")
        console.print(f"config {CONFIG_VERSION}")
        raise typer.Exit()
    configure_logging(verbose=verbose)


# 注册命令
app.command(name="deploy", help="通过 Supabase CLI 部署函数")(deploy_cmd.deploy_command)
app.command(name="serve", help="在本地短时间 serve 函数做冒烟测试")(deploy_cmd.serve_command)
app.command(name="bundle", help="把函数及其本地依赖打包成单个源文件")(bundle_cmd.bundle_command)
app.command(name="list", help="列出项目中的函数")(list_cmd.list_command)
app.command(name="delete", help="删除远端已部署的函数")(remote_cmd.delete_command)
app.command(name="sql", help="在项目数据库上执行 SQL")(remote_cmd.sql_command)
app.command(name="branches", help="列出项目的分支")(remote_cmd.branches_command)

app.add_typer(auth_cmd.app, name="auth", help="管理本地保存的 Supabase 凭据")


def main() -> None:
    """CLI 入口。"""
    app()


if __name__ == "__main__":
    main()
