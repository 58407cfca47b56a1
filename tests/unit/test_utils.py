"""工具函数测试。"""

import logging

from edgefn.utils.files import get_credentials_path, get_edgefn_home, get_project_config_path
from edgefn.utils.log import configure_logging


def test_edgefn_home_override(edgefn_home):
    assert get_edgefn_home() == edgefn_home
    assert get_credentials_path() == edgefn_home / "credentials.json"


def test_edgefn_home_default(monkeypatch, tmp_path):
    monkeypatch.delenv("EDGEFN_HOME", raising=False)
    monkeypatch.delenv("USERPROFILE", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert get_edgefn_home() == tmp_path / ".edgefn"


def test_project_config_path(tmp_path):
    assert get_project_config_path(tmp_path) == tmp_path / ".edgefn" / "config.yaml"


def test_configure_logging_is_idempotent():
    logger = logging.getLogger("edgefn")
    configure_logging()
    configure_logging(verbose=True)

    rich_handlers = [h for h in logger.handlers if h.get_name() == "edgefn-rich"]
    assert len(rich_handlers) == 1
    assert logger.level == logging.DEBUG
    assert rich_handlers[0].level == logging.DEBUG

    configure_logging()
    assert logger.level == logging.INFO
