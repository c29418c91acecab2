"""Runtime settings gathered from flags, environment, config file and defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from khelper.durations import parse_duration

DEFAULT_OUTPUT = "table"
DEFAULT_REQUEST_TIMEOUT = timedelta(seconds=30)
ENV_PREFIX = "KHELPER"
CONFIG_FILE_NAME = ".khelper.yaml"

_KEYS = ("kubeconfig", "context", "namespace", "output", "verbose", "request_timeout")


@dataclass
class Settings:
    """Application-level runtime configuration."""

    kubeconfig: str
    context: str = ""
    namespace: str = ""
    output: str = DEFAULT_OUTPUT
    verbose: bool = False
    request_timeout: timedelta = DEFAULT_REQUEST_TIMEOUT


def default_kubeconfig_path() -> str:
    """The kubeconfig path under the user's home directory."""
    try:
        home = Path.home()
    except RuntimeError:
        return os.path.join(".kube", "config")
    return str(home / ".kube" / "config")


def _default_config_path() -> Optional[Path]:
    try:
        return Path.home() / CONFIG_FILE_NAME
    except RuntimeError:
        return None


def _read_config_file(path: Optional[Union[str, Path]]) -> dict[str, Any]:
    if path is None:
        return {}
    path = Path(path)
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"read config file: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"read config file: {path} does not hold a mapping")
    return {str(key).lower().replace("-", "_"): value for key, value in data.items()}


def gather_values(
    flags: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Union[str, Path]] = None,
) -> dict[str, Any]:
    """Merge settings: explicit flags, then KHELPER_* variables, then the file, then defaults."""
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = _default_config_path()

    values: dict[str, Any] = {
        "kubeconfig": default_kubeconfig_path(),
        "output": DEFAULT_OUTPUT,
        "request_timeout": DEFAULT_REQUEST_TIMEOUT,
    }
    values.update({k: v for k, v in _read_config_file(config_path).items() if k in _KEYS})

    for key in _KEYS:
        env_value = environ.get(f"{ENV_PREFIX}_{key.upper()}")
        if env_value:
            values[key] = env_value

    for key, value in (flags or {}).items():
        normalized = key.lower().replace("-", "_")
        if normalized in _KEYS and value is not None:
            values[normalized] = value
    return values


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return _as_text(value).strip() in ("1", "t", "T", "true", "TRUE", "True")


def _parse_request_timeout(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    raw = _as_text(value).strip()
    if not raw:
        return timedelta(0)
    try:
        return parse_duration(raw)
    except ValueError as exc:
        raise ValueError(f'invalid request timeout "{raw}": {exc}') from exc


def load(values: Mapping[str, Any]) -> Settings:
    """Validate and normalise gathered values into Settings."""
    request_timeout = _parse_request_timeout(values.get("request_timeout"))

    kubeconfig = _as_text(values.get("kubeconfig")).strip() or default_kubeconfig_path()
    output = _as_text(values.get("output")).strip().lower()

    settings = Settings(
        kubeconfig=os.path.abspath(kubeconfig),
        context=_as_text(values.get("context")).strip(),
        namespace=_as_text(values.get("namespace")).strip(),
        output=output,
        verbose=_as_bool(values.get("verbose")),
        request_timeout=request_timeout,
    )

    if output in ("", "table"):
        settings.output = "table"
    elif output != "json":
        raise ValueError(f'invalid output format "{output}" (allowed: table, json)')
    if settings.request_timeout < timedelta(0):
        raise ValueError("request timeout must be >= 0")
    return settings