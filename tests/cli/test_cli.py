"""edgefn 命令行测试。"""

import os
import time

import pytest

from edgefn.auth import CredentialRecord, FileCredentialStore
from edgefn.core.config import Config, save_config
from edgefn.utils.files import get_project_config_path


def test_version(invoke):
    result = invoke(["--version"])
    assert result.exit_code == 0
    assert "edgefn" in result.stdout
    assert "0.3.0" in result.stdout


class TestListCommand:
    """测试 edgefn list。"""

    def test_lists_functions(self, invoke, functions_app):
        functions_app.create_function("alpha")
        (functions_app.functions_root / "beta").mkdir(parents=True)
        (functions_app.functions_root / "_shared").mkdir(parents=True)

        result = invoke(["list", "--app", str(functions_app.root)])

        assert result.exit_code == 0
        assert "alpha" in result.stdout
        assert "beta" in result.stdout
        assert "_shared" not in result.stdout
        assert "缺失" in result.stdout

    def test_empty_project(self, invoke, tmp_path):
        result = invoke(["list"], cwd=tmp_path)
        assert result.exit_code == 0
        assert "没有函数" in result.stdout


class TestBundleCommand:
    """测试 edgefn bundle。"""

    def test_prints_bundle(self, invoke, functions_app):
        functions_app.write("_shared/cors.ts", "export const cors = { origin: '*' };\n")
        functions_app.create_function(
            "hello",
            "import { cors } from '../_shared/cors.ts';\nexport default () => new Response('', { headers: cors });\n",
        )

        result = invoke(["bundle", "hello"], cwd=functions_app.root)

        assert result.exit_code == 0
        assert "// _shared/cors.ts" in result.stdout
        assert "../_shared" not in result.stdout

    def test_writes_output_file(self, invoke, functions_app, tmp_path):
        functions_app.create_function("hello")
        output = tmp_path / "out" / "hello.js"

        result = invoke(["bundle", "hello", "--app", str(functions_app.root), "--output", str(output)])

        assert result.exit_code == 0
        assert "export default" in output.read_text(encoding="utf-8")

    def test_missing_entry_exits_with_error(self, invoke, functions_app):
        result = invoke(["bundle", "ghost", "--app", str(functions_app.root)])

        assert result.exit_code == 1
        assert "错误" in result.stdout


class TestAuthCommands:
    """测试 edgefn auth。"""

    def test_set_status_clear(self, invoke, edgefn_home):
        result = invoke(["auth", "set", "--refresh-token", "refresh-abcdefgh"])
        assert result.exit_code == 0
        assert FileCredentialStore().read().refresh_token == "refresh-abcdefgh"

        result = invoke(["auth", "status"])
        assert result.exit_code == 0
        assert "需要刷新" in result.stdout
        assert "refresh-abcdefgh" not in result.stdout

        result = invoke(["auth", "clear"])
        assert result.exit_code == 0
        assert not (edgefn_home / "credentials.json").exists()

        result = invoke(["auth", "status"])
        assert "未认证" in result.stdout


@pytest.mark.skipif(os.name == "nt", reason="依赖 POSIX shell")
class TestDeployAndServe:
    """用 shell 脚本冒充 Supabase CLI。"""

    @pytest.fixture
    def fake_cli(self, tmp_path, monkeypatch):
        cli = tmp_path / "fake-supabase"
        cli.write_text(
            "#!/bin/sh\n"
            'echo "deploying $3 with $SUPABASE_ACCESS_TOKEN"\n'
            'if [ "$2" = "serve" ]; then echo "serve crashed" >&2; exit 1; fi\n',
            encoding="utf-8",
        )
        cli.chmod(0o755)
        monkeypatch.setenv("SUPABASE_CLI_PATH", str(cli))
        return cli

    def test_deploy(self, invoke, functions_app, fake_cli):
        FileCredentialStore().write(
            CredentialRecord(
                access_token="cli-token",
                refresh_token="r",
                expires_in=3600,
                issued_at=int(time.time()),
            )
        )

        result = invoke(["deploy", "hello", "--project-ref", "ref-1", "--app", str(functions_app.root)])

        assert result.exit_code == 0
        assert "部署完成" in result.stdout

    def test_deploy_without_credentials(self, invoke, functions_app, fake_cli):
        result = invoke(["deploy", "hello", "--project-ref", "ref-1", "--app", str(functions_app.root)])

        assert result.exit_code == 1
        assert "refresh token" in result.stdout

    def test_serve_failure(self, invoke, functions_app, fake_cli):
        functions_app.create_function("hello")
        config = Config()
        config.serve.run_duration_s = 2.0
        save_config(config, get_project_config_path(functions_app.root))

        result = invoke(["serve", "hello", "--app", str(functions_app.root)])

        assert result.exit_code == 1
        assert "serve crashed" in result.stdout
