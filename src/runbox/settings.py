from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- workspace ----
    scratch_root: Optional[Path] = None  # None -> tempfile.gettempdir()

    # ---- time / output budgets ----
    compile_timeout_s: float = 8.0
    run_timeout_s: float = 8.0
    max_output_chars: int = 1024 * 1024

    # ---- toolchain overrides, e.g. {"python3": "/usr/bin/python3.12"} ----
    runtimes: Dict[str, str] = {}

    # ---- http boundary ----
    host: str = "0.0.0.0"
    port: int = 4000

    # ---- logging ----
    log_level: str = "INFO"
    log_json: bool = True

    # env prefix RUNBOX_*
    model_config = SettingsConfigDict(env_prefix="RUNBOX_", extra="ignore")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    block = data.get(key) or {}
    return block if isinstance(block, dict) else {}


def load_settings(path: Optional[Path] = None) -> Settings:
    # 0) base from RUNBOX_* env
    s = Settings()

    # 1) conf/runbox.yaml (or RUNBOX_CONF)
    conf = path or Path(os.environ.get("RUNBOX_CONF", "conf/runbox.yaml"))
    try:
        with open(conf, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (FileNotFoundError, yaml.YAMLError):
        data = {}
    if not isinstance(data, dict):
        data = {}

    limits = _section(data, "limits")
    server = _section(data, "server")
    log = _section(data, "logging")
    runtimes = data.get("runtimes") or {}
    if not isinstance(runtimes, dict):
        runtimes = {}

    scratch = data.get("scratch_root", s.scratch_root)

    # 2) merge, keeping Path/float/int/bool types
    return s.model_copy(
        update={
            "scratch_root": Path(str(scratch)) if scratch else None,
            "compile_timeout_s": float(limits.get("compile_timeout_s", s.compile_timeout_s)),
            "run_timeout_s": float(limits.get("run_timeout_s", s.run_timeout_s)),
            "max_output_chars": int(limits.get("max_output_chars", s.max_output_chars)),
            "runtimes": {**s.runtimes, **{str(k): str(v) for k, v in runtimes.items()}},
            "host": str(server.get("host", s.host)),
            "port": int(server.get("port", s.port)),
            "log_level": str(log.get("level", s.log_level)).upper(),
            "log_json": bool(log.get("json", s.log_json)),
        }
    )
