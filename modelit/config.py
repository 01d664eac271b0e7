"""Runtime configuration loader for the ModelIt web backend."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


CONFIG_ENV_VAR = "MODELIT_UI_CONFIG"
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "cfg" / "modelit.yaml"
DEFAULT_LOCAL_CONFIG_PATH = PROJECT_ROOT / "cfg" / "modelit.local.yaml"

_ENV_VAR_RE = re.compile(r"\$(\w+)|\${([^}]+)}")
_TRUTHY = {"1", "true", "yes", "y", "on"}


def _expand_env_vars(text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        var = match.group(1) or match.group(2)
        if var and var in os.environ:
            return os.environ[var]
        return match.group(0)

    expanded = _ENV_VAR_RE.sub(_replace, text)
    return os.path.expanduser(expanded)


def _expand_env_in_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _expand_env_in_value(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env_in_value(val) for val in value]
    if isinstance(value, str):
        return _expand_env_vars(value)
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


@dataclass(slots=True)
class TemplateSelectionConfig:
    script: str = "templateSelection"
    use_parallel_blast: bool = True
    num_cpus: int = 8
    psiblast_iterations: int = 5
    evalue_cutoff: float = 1e-5
    num_templates: int = 20

    def __post_init__(self) -> None:
        self.script = str(self.script).strip() or "templateSelection"
        if isinstance(self.use_parallel_blast, str):
            self.use_parallel_blast = _as_bool(self.use_parallel_blast)
        for attr in ("num_cpus", "psiblast_iterations", "num_templates"):
            value = getattr(self, attr)
            if isinstance(value, str) and value.strip():
                setattr(self, attr, int(value))
        if isinstance(self.evalue_cutoff, str) and self.evalue_cutoff.strip():
            self.evalue_cutoff = float(self.evalue_cutoff)
        self.num_cpus = max(1, int(self.num_cpus))


@dataclass(slots=True)
class ModelingConfig:
    script: str = "model_it"
    use_parallel_tinker: bool = False

    def __post_init__(self) -> None:
        self.script = str(self.script).strip() or "model_it"
        if isinstance(self.use_parallel_tinker, str):
            self.use_parallel_tinker = _as_bool(self.use_parallel_tinker)


@dataclass(slots=True)
class SchedulerConfig:
    qsub_path: str = "qsub"
    qstat_path: str = "qstat"
    user: Optional[str] = None
    queue: str = "all.q"
    parallel_env: str = "threaded"
    mock: bool = False
    debug: bool = False
    template_selection: TemplateSelectionConfig = field(default_factory=TemplateSelectionConfig)
    modeling: ModelingConfig = field(default_factory=ModelingConfig)

    def __post_init__(self) -> None:
        if isinstance(self.user, str):
            self.user = self.user.strip() or None
        if isinstance(self.mock, str):
            self.mock = _as_bool(self.mock)
        if isinstance(self.debug, str):
            self.debug = _as_bool(self.debug)
        if self.template_selection is None:
            self.template_selection = TemplateSelectionConfig()
        elif isinstance(self.template_selection, dict):
            self.template_selection = TemplateSelectionConfig(**self.template_selection)
        if self.modeling is None:
            self.modeling = ModelingConfig()
        elif isinstance(self.modeling, dict):
            self.modeling = ModelingConfig(**self.modeling)

    def queue_user(self) -> Optional[str]:
        return self.user or os.getenv("MODELIT_SCHEDULER_USER") or os.getenv("USER")


@dataclass(slots=True)
class AppPaths:
    project_root: Path = field(default_factory=lambda: Path(__file__).resolve().parents[1])
    workspace_root: Optional[Path] = None
    results_root: Optional[Path] = None
    static_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if isinstance(self.project_root, str):
            self.project_root = Path(self.project_root).expanduser()
        if not self.project_root.is_absolute():
            self.project_root = (Path.cwd() / self.project_root).resolve()

        if isinstance(self.workspace_root, str):
            self.workspace_root = Path(self.workspace_root).expanduser()
        if self.workspace_root is None:
            self.workspace_root = Path(self.project_root)
        elif not self.workspace_root.is_absolute():
            self.workspace_root = (self.project_root / self.workspace_root).resolve()

        if isinstance(self.results_root, str):
            self.results_root = Path(self.results_root).expanduser()
        if isinstance(self.static_dir, str):
            self.static_dir = Path(self.static_dir).expanduser()

        if self.results_root is None:
            self.results_root = self.workspace_root / "results"
        if self.static_dir is None:
            self.static_dir = self.workspace_root / "modelit" / "static"
        if not self.results_root.is_absolute():
            self.results_root = (self.workspace_root / self.results_root).resolve()
        if not self.static_dir.is_absolute():
            self.static_dir = (self.workspace_root / self.static_dir).resolve()


@dataclass(slots=True)
class ServerConfig:
    paths: AppPaths = field(default_factory=AppPaths)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    log_dir: Path = field(default_factory=lambda: Path.cwd() / "logs" / "modelit")
    refresh_seconds: int = 10

    def ensure_dirs(self) -> None:
        for path in [self.log_dir, self.paths.results_root]:
            if path:
                path.mkdir(parents=True, exist_ok=True)


def _deep_update(dest: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in src.items():
        if isinstance(value, dict) and isinstance(dest.get(key), dict):
            dest[key] = _deep_update(dest[key], value)
        else:
            dest[key] = value
    return dest


def _load_yaml_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return _expand_env_in_value(data)


def _path_matches(a: Path, b: Path) -> bool:
    a_exp = a.expanduser()
    b_exp = b.expanduser()
    try:
        return a_exp.resolve() == b_exp.resolve()
    except OSError:
        return str(a_exp) == str(b_exp)


def _config_from_dict(data: Dict[str, Any]) -> ServerConfig:
    scheduler_dict = data.get("scheduler", {}) if isinstance(data.get("scheduler"), dict) else {}
    paths_dict = data.get("paths", {}) if isinstance(data.get("paths"), dict) else {}

    cfg = ServerConfig(paths=AppPaths(**paths_dict), scheduler=SchedulerConfig(**scheduler_dict))
    if data.get("log_dir"):
        cfg.log_dir = Path(data["log_dir"]).expanduser()
    if data.get("refresh_seconds"):
        cfg.refresh_seconds = max(1, int(data["refresh_seconds"]))
    return cfg


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if root := os.getenv("MODELIT_PROJECT_ROOT"):
        overrides.setdefault("paths", {})["project_root"] = root
    if workspace_root := os.getenv("MODELIT_WORKSPACE_ROOT"):
        overrides.setdefault("paths", {})["workspace_root"] = workspace_root
    if results_root := os.getenv("MODELIT_RESULTS_ROOT"):
        overrides.setdefault("paths", {})["results_root"] = results_root
    if static_dir := os.getenv("MODELIT_STATIC_DIR"):
        overrides.setdefault("paths", {})["static_dir"] = static_dir
    if user := os.getenv("MODELIT_SCHEDULER_USER"):
        overrides.setdefault("scheduler", {})["user"] = user
    if queue := os.getenv("MODELIT_SCHEDULER_QUEUE"):
        overrides.setdefault("scheduler", {})["queue"] = queue
    if mock := os.getenv("MODELIT_SCHEDULER_MOCK"):
        overrides.setdefault("scheduler", {})["mock"] = _as_bool(mock)
    if refresh := os.getenv("MODELIT_REFRESH_SECONDS"):
        overrides["refresh_seconds"] = refresh
    if log_dir := os.getenv("MODELIT_LOG_DIR"):
        overrides["log_dir"] = log_dir
    return overrides


@lru_cache(maxsize=1)
def load_config() -> ServerConfig:
    """Load configuration from environment override → YAML → defaults."""
    default: Dict[str, Any] = {
        "paths": {
            "project_root": str(PROJECT_ROOT),
        },
        "scheduler": {},
    }

    cfg_path_env = os.getenv(CONFIG_ENV_VAR)
    if not cfg_path_env:
        cfg_paths = [DEFAULT_CONFIG_PATH, DEFAULT_LOCAL_CONFIG_PATH]
    else:
        env_path = Path(cfg_path_env).expanduser()
        # Keep layered behavior when env points at the default/local config.
        if _path_matches(env_path, DEFAULT_CONFIG_PATH) or _path_matches(env_path, DEFAULT_LOCAL_CONFIG_PATH):
            cfg_paths = [DEFAULT_CONFIG_PATH, DEFAULT_LOCAL_CONFIG_PATH]
        else:
            cfg_paths = [env_path]

    merged = default
    for path in cfg_paths:
        merged = _deep_update(merged, _load_yaml_config(path))
    merged = _deep_update(merged, _env_overrides())
    return _config_from_dict(merged)


__all__ = [
    "ServerConfig",
    "SchedulerConfig",
    "TemplateSelectionConfig",
    "ModelingConfig",
    "AppPaths",
    "load_config",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_LOCAL_CONFIG_PATH",
]
