"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from typer.testing import CliRunner

# Add src directory to Python path for tests
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from edgefn import app  # noqa: E402
from edgefn.functions.layout import get_functions_root  # noqa: E402


@dataclass
class FunctionsApp:
    """Test helper to build a minimal app with supabase/functions."""

    root: Path

    @property
    def functions_root(self) -> Path:
        return get_functions_root(self.root)

    def write(self, relative: str, content: str) -> Path:
        path = self.functions_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def create_function(self, name: str, index: str = "export default () => new Response('ok');\n") -> Path:
        return self.write(f"{name}/index.ts", index)

    def install_local_cli(self, script: str) -> Path:
        """在 node_modules/.bin 下放一个可执行的假 supabase CLI。"""
        bin_dir = self.root / "node_modules" / ".bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        cli = bin_dir / "supabase"
        cli.write_text(script, encoding="utf-8")
        cli.chmod(0o755)
        return cli


@pytest.fixture(autouse=True)
def edgefn_home(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """隔离用户目录，测试不会读写真实凭据。"""
    home = tmp_path_factory.mktemp("edgefn-home")
    monkeypatch.setenv("EDGEFN_HOME", str(home))
    monkeypatch.delenv("SUPABASE_CLI_PATH", raising=False)
    return home


@pytest.fixture
def functions_app(tmp_path: Path) -> FunctionsApp:
    app_root = tmp_path / "app"
    app_root.mkdir()
    return FunctionsApp(root=app_root)


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(cli_runner: CliRunner):
    def _invoke(args: list[str], cwd: Path | None = None):
        if cwd is None:
            return cli_runner.invoke(app, args)
        original = Path.cwd()
        os.chdir(cwd)
        try:
            return cli_runner.invoke(app, args)
        finally:
            os.chdir(original)

    return _invoke


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(item.fspath))
        if "tests" not in path.parts:
            continue
        try:
            tests_index = path.parts.index("tests")
        except ValueError:
            continue
        if len(path.parts) <= tests_index + 1:
            continue
        group = path.parts[tests_index + 1]
        if group in {"unit", "cli", "integration"}:
            item.add_marker(getattr(pytest.mark, group))
