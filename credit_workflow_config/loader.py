"""
Workflow definition loader (``credit_workflow_config.loader``).

Responsibility
--------------
Loads YAML workflow definition files and builds them into
``credit_workflow.domain.WorkflowDefinition`` objects through the same
``add_stage`` / ``add_transition`` validation the engine applies to
definitions built in code.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Consumed by deployment
scripts and tests to seed definition stores.  The engine itself never
reads files.

Invariants enforced
-------------------
* A definition that fails any stage or transition rule is rejected as a
  whole; no partially built definition is returned.
* Error messages name the offending stage or transition.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  definition identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys, unknown enum values, or rule violations
  -> ``DefinitionConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from credit_workflow.domain.definition import WorkflowDefinition
from credit_workflow.domain.values import CaseStatus, CaseType, WorkflowAction
from credit_workflow.exceptions import DefinitionConfigError
from credit_workflow.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_DEFINITIONS_DIR = Path(__file__).parent / "definitions"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _enum(enum_type, value: Any, source: str, where: str):
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise DefinitionConfigError(
            source, f"{where}: unknown {enum_type.__name__} {value!r} (allowed: {allowed})",
        ) from None


def _require(data: dict[str, Any], key: str, source: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise DefinitionConfigError(source, f"{where}: missing required key {key!r}")
    return data[key]


def parse_definition(data: dict[str, Any], source: str = "<dict>") -> WorkflowDefinition:
    """
    Build a ``WorkflowDefinition`` from a parsed YAML mapping.

    Expected shape::

        name: Corporate Loan Workflow
        case_type: corporate
        version: 1            # optional, default 1
        is_active: true       # optional, default true
        stages:
          - {status: draft, display_name: Draft, assigned_role: LoanOfficer,
             sla_hours: 0, sort_order: 1}
        transitions:
          - {from_status: draft, to_status: submitted, action: submit,
             required_role: LoanOfficer}

    Raises:
        DefinitionConfigError: on any missing key, unknown value, or
            stage/transition rule violation.
    """
    if not isinstance(data, dict):
        raise DefinitionConfigError(source, "definition must be a mapping")

    name = _require(data, "name", source, "definition")
    case_type = _enum(CaseType, _require(data, "case_type", source, "definition"), source, "definition")
    created = WorkflowDefinition.create(name, data.get("description", ""), case_type)
    if created.is_failure:
        raise DefinitionConfigError(source, created.reason)
    definition = created.value
    definition.version = int(data.get("version", 1))
    definition.is_active = bool(data.get("is_active", True))

    for index, stage in enumerate(data.get("stages") or []):
        where = f"stage #{index + 1} ({stage.get('status', '?')})"
        added = definition.add_stage(
            status=_enum(CaseStatus, _require(stage, "status", source, where), source, where),
            display_name=_require(stage, "display_name", source, where),
            assigned_role=_require(stage, "assigned_role", source, where),
            sla_hours=int(stage.get("sla_hours", 0)),
            sort_order=int(stage.get("sort_order", index)),
            description=stage.get("description", ""),
            requires_comment=bool(stage.get("requires_comment", False)),
            is_terminal=bool(stage.get("is_terminal", False)),
        )
        if added.is_failure:
            raise DefinitionConfigError(source, f"{where}: {added.reason}")

    for index, transition in enumerate(data.get("transitions") or []):
        where = (
            f"transition #{index + 1} "
            f"({transition.get('from_status', '?')} -> {transition.get('to_status', '?')} "
            f"via {transition.get('action', '?')})"
        )
        added = definition.add_transition(
            from_status=_enum(CaseStatus, _require(transition, "from_status", source, where), source, where),
            to_status=_enum(CaseStatus, _require(transition, "to_status", source, where), source, where),
            action=_enum(WorkflowAction, _require(transition, "action", source, where), source, where),
            required_role=_require(transition, "required_role", source, where),
            requires_comment=bool(transition.get("requires_comment", False)),
            condition_expression=transition.get("condition"),
        )
        if added.is_failure:
            raise DefinitionConfigError(source, f"{where}: {added.reason}")

    if not definition.stages:
        raise DefinitionConfigError(source, "definition has no stages")

    return definition


def load_definition(path: Path) -> WorkflowDefinition:
    """Load and build one definition file."""
    path = Path(path)
    data = load_yaml_file(path)
    definition = parse_definition(data, source=str(path))
    logger.info(
        "definition_loaded",
        extra={
            "source": str(path),
            "definition_name": definition.name,
            "case_type": definition.case_type.value,
            "version": definition.version,
            "checksum": compute_checksum(data),
        },
    )
    return definition


def load_default_definitions(directory: Path | None = None) -> list[WorkflowDefinition]:
    """Load every ``*.yaml`` definition in ``directory`` in filename order."""
    directory = Path(directory) if directory is not None else DEFAULT_DEFINITIONS_DIR
    return [load_definition(path) for path in sorted(directory.glob("*.yaml"))]


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums, regardless
          of key order.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
