from __future__ import annotations

import os

import pytest

from fastmks import config as mks_config


@pytest.fixture(autouse=True)
def _isolated_runtime(monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ):
        if key.startswith("FASTMKS_"):
            monkeypatch.delenv(key, raising=False)
    mks_config.reset_runtime_context()
    yield
    mks_config.reset_runtime_context()
