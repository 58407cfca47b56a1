"""Supabase CLI 查找测试。"""

import logging

import pytest

from edgefn.errors import CliNotFound
from edgefn.supabase import CLI_PATH_ENV, CliLocator, CliSource, quote_command


class FakeTime:
    """可控的时钟与 sleep。"""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_locator(fake: FakeTime, which=lambda name: None, **kwargs) -> CliLocator:
    return CliLocator(
        which=which,
        platform="linux",
        clock=fake.clock,
        sleep=fake.sleep,
        **kwargs,
    )


class TestQuoteCommand:
    """测试 quote_command。"""

    def test_plain_path(self):
        assert quote_command("/usr/bin/supabase") == "/usr/bin/supabase"

    def test_path_with_spaces(self):
        assert quote_command("/Program Files/supabase") == '"/Program Files/supabase"'

    def test_embedded_quotes(self):
        assert quote_command('/a"b') == '/a\\"b'


class TestResolve:
    """测试 CliLocator.resolve。"""

    @pytest.mark.asyncio
    async def test_env_override_wins_without_polling(self, tmp_path):
        fake = FakeTime()
        locator = make_locator(fake, which=lambda name: "/usr/bin/supabase")

        location = await locator.resolve(tmp_path, env={CLI_PATH_ENV: "  /opt/my cli/supabase  "})

        assert location.source is CliSource.ENV
        assert location.raw_path == "/opt/my cli/supabase"
        assert location.command == '"/opt/my cli/supabase"'
        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_local_install_preferred_over_global(self, functions_app):
        cli = functions_app.install_local_cli("#!/bin/sh\n")
        fake = FakeTime()
        locator = make_locator(fake, which=lambda name: "/usr/bin/supabase")

        location = await locator.resolve(functions_app.root, env={})

        assert location.source is CliSource.LOCAL
        assert location.raw_path == str(cli)

    @pytest.mark.asyncio
    async def test_global_install(self, tmp_path):
        fake = FakeTime()
        locator = make_locator(fake, which=lambda name: "\n/usr/local/bin/supabase\n/usr/bin/supabase\n")

        location = await locator.resolve(tmp_path, env={})

        assert location.source is CliSource.GLOBAL
        assert location.raw_path == "/usr/local/bin/supabase"

    @pytest.mark.asyncio
    async def test_waits_for_installation(self, tmp_path):
        fake = FakeTime()
        calls = {"count": 0}

        def which(name):
            calls["count"] += 1
            return "/usr/bin/supabase" if calls["count"] >= 3 else None

        location = await make_locator(fake, which=which).resolve(tmp_path, env={})

        assert location.source is CliSource.GLOBAL
        assert fake.sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_wait_timeout(self, tmp_path, caplog):
        fake = FakeTime()
        locator = make_locator(fake, poll_interval_s=1.0, wait_timeout_s=5.0)

        with caplog.at_level(logging.INFO, logger="edgefn"):
            with pytest.raises(CliNotFound) as exc_info:
                await locator.resolve(tmp_path, env={})

        message = str(exc_info.value)
        assert "pnpm add -D supabase" in message
        assert "npm install --save-dev supabase" in message
        assert fake.sleeps == [1.0] * 5
        waiting = [r for r in caplog.records if "Waiting for installation" in r.getMessage()]
        assert len(waiting) == 1

    def test_windows_local_candidates(self, tmp_path):
        locator = CliLocator(platform="win32")
        names = [p.name for p in locator.local_candidates(tmp_path)]
        assert names == ["supabase.cmd", "supabase.exe"]
