"""edgefn 版本常量（集中管理）。"""

from __future__ import annotations

__version__ = "0.3.0"
PACKAGE_VERSION = __version__
CONFIG_VERSION = "1.0"
CREDENTIALS_SCHEMA_VERSION = 1

USER_AGENT = f"edgefn/{PACKAGE_VERSION}"
