"""
Runtime settings (``credit_workflow_config.settings``).

Responsibility
--------------
Resolves the handful of deployment settings the engine's outer shell needs
(database URL, superuser role, log level, SQL echo) from an optional YAML
file plus ``CREDIT_WORKFLOW_*`` environment overrides.

Precedence (highest first): environment, YAML file, defaults.

Failure modes
-------------
* Unknown keys in the YAML file  -> ``ValueError``.
* Missing YAML file (when a path is given)  -> ``FileNotFoundError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from credit_workflow.domain.values import SUPERUSER_ROLE
from credit_workflow_config.loader import load_yaml_file

ENV_PREFIX = "CREDIT_WORKFLOW_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class WorkflowSettings:
    """Resolved settings.  Immutable once loaded."""

    database_url: str = "sqlite:///:memory:"
    superuser_role: str = SUPERUSER_ROLE
    log_level: str = "INFO"
    sql_echo: bool = False


def _coerce(name: str, value: Any) -> Any:
    if name == "sql_echo":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES
    if name == "log_level":
        return str(value).upper()
    return str(value)


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorkflowSettings:
    """
    Build ``WorkflowSettings`` from defaults, an optional YAML file, and the
    environment (``os.environ`` unless ``environ`` is given).
    """
    settings = WorkflowSettings()
    known = {f.name for f in fields(WorkflowSettings)}

    if path is not None:
        data = load_yaml_file(Path(path))
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")
        settings = replace(settings, **{k: _coerce(k, v) for k, v in data.items()})

    env = os.environ if environ is None else environ
    overrides = {
        name: _coerce(name, env[ENV_PREFIX + name.upper()])
        for name in known
        if ENV_PREFIX + name.upper() in env
    }
    if overrides:
        settings = replace(settings, **overrides)

    return settings
