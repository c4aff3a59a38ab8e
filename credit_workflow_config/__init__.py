"""
credit_workflow_config -- settings and YAML workflow definitions.

Responsibility:
    Loads deployment settings (``load_settings``) and builds workflow
    definitions from version-controlled YAML files (``load_definition``,
    ``load_default_definitions``).  The engine never reads files or the
    environment itself; callers pass what this package produces.

Architecture position:
    Configuration.  Sits above ``credit_workflow.domain``; the engine MUST
    NEVER import from ``credit_workflow_config``.
"""

from credit_workflow_config.loader import (
    DEFAULT_DEFINITIONS_DIR,
    compute_checksum,
    load_default_definitions,
    load_definition,
    load_yaml_file,
    parse_definition,
)
from credit_workflow_config.settings import WorkflowSettings, load_settings

__all__ = [
    "DEFAULT_DEFINITIONS_DIR",
    "WorkflowSettings",
    "compute_checksum",
    "load_default_definitions",
    "load_definition",
    "load_settings",
    "load_yaml_file",
    "parse_definition",
]
