from __future__ import annotations

import sys
from typing import Any

import pytest

from scripts import run_server


def test_main_starts_uvicorn_with_app_path(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, dict[str, Any]]] = []

    def fake_run(app: str, **kwargs: Any) -> None:
        calls.append((app, kwargs))

    monkeypatch.setattr(run_server.uvicorn, "run", fake_run)
    monkeypatch.setattr(sys, "argv", ["run_server.py", "--port", "9001", "--no-reload"])

    run_server.main()

    assert calls == [
        ("feedback_engine.web.main:app", {"host": "0.0.0.0", "port": 9001, "reload": False})
    ]


def test_reload_is_on_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["run_server.py"])
    args = run_server.parse_args()
    assert args.port == 8000
    assert args.no_reload is False
