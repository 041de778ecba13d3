from __future__ import annotations

import sys
from pathlib import Path

import pytest

# uv/pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tradebench.core.config import Config  # noqa: E402


@pytest.fixture()
def repo_root() -> Path:
    return REPO_ROOT


@pytest.fixture()
def default_config() -> Config:
    return Config.from_yaml(REPO_ROOT / "config" / "default.yaml")
