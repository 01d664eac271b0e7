#!/usr/bin/env python3
"""Preflight checks for a ModelIt server host."""

from __future__ import annotations

import importlib
import os
import shutil
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_CONFIG = ROOT / "cfg" / "modelit.yaml"
REQUIRED_MODULES = (
    "fastapi",
    "uvicorn",
    "yaml",
    "pydantic",
)


def _ok(msg: str) -> None:
    print(f"[ok] {msg}")


def _warn(msg: str) -> None:
    print(f"[warn] {msg}")


def _fail(msg: str) -> None:
    print(f"[fail] {msg}")


def main() -> int:
    failed = False

    if sys.version_info < (3, 10):
        _fail(f"Python {sys.version.split()[0]} detected; Python 3.10+ is required.")
        failed = True
    else:
        _ok(f"Python {sys.version.split()[0]}")

    cfg_path = Path(os.getenv("MODELIT_UI_CONFIG", str(DEFAULT_CONFIG))).expanduser()
    if cfg_path.exists():
        _ok(f"Config file found: {cfg_path}")
    else:
        _fail(f"Config file not found: {cfg_path}")
        failed = True

    for mod_name in REQUIRED_MODULES:
        try:
            importlib.import_module(mod_name)
        except ImportError as exc:
            _fail(f"Missing Python module '{mod_name}': {exc}")
            failed = True
        else:
            _ok(f"Python module available: {mod_name}")

    if failed:
        _fail("Doctor checks failed.")
        return 1

    from modelit.config import load_config

    cfg = load_config()
    sched = cfg.scheduler
    if sched.mock:
        _warn("Scheduler mock mode is on; no jobs will reach the cluster.")
    for tool in (sched.qsub_path, sched.qstat_path):
        path = shutil.which(tool)
        if path:
            _ok(f"Scheduler tool available: {tool} ({path})")
        elif sched.mock:
            _warn(f"Scheduler tool not found: {tool}")
        else:
            _fail(f"Scheduler tool not found: {tool}")
            failed = True
    if sched.queue_user():
        _ok(f"Scheduler user: {sched.queue_user()}")
    else:
        _fail("No scheduler user; set scheduler.user or MODELIT_SCHEDULER_USER.")
        failed = True

    for script in (sched.template_selection.script, sched.modeling.script):
        if Path(script).exists() or shutil.which(script):
            _ok(f"Pipeline script found: {script}")
        else:
            _warn(f"Pipeline script not visible from this host: {script}")

    for target in (cfg.paths.results_root, cfg.log_dir):
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _fail(f"Cannot create/access {target}: {exc}")
            failed = True
            continue
        if os.access(target, os.W_OK):
            _ok(f"Writable directory: {target}")
        else:
            _fail(f"Directory not writable: {target}")
            failed = True

    if failed:
        _fail("Doctor checks failed.")
        return 1
    _ok("Doctor checks passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
