"""
Debug profile.

The profile is read once from a YAML file at startup, validated, and then shared
read-only by every reconcile. Keys follow the camelCase names used in the YAML
file; attributes are snake_case.

Example:
    name: api-debug
    namespace: default
    type: deployment
    labelSelector:
      app: api
    containerName: api
    commandArgs: ["/app/server", "--config=/etc/api.yaml"]
    dlvExePath: /opt/go/bin/dlv
    nodeHost: 192.168.1.10
    nodePort: 31000
    projectRootDir: /home/dev/api
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ProfileError

MIN_DEBUG_PORT = 30000
MAX_DEBUG_PORT = 32767


class WorkloadType(str, Enum):
    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"


_WORKLOAD_TYPE_ALIASES = {
    "replica-workload": WorkloadType.DEPLOYMENT.value,
    "stable-workload": WorkloadType.STATEFULSET.value,
}


class DebugProfile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    workload_type: WorkloadType = Field(alias="type")
    label_selector: Dict[str, str] = Field(default_factory=dict, alias="labelSelector")
    field_selector: Dict[str, str] = Field(default_factory=dict, alias="fieldSelector")
    container_name: str = Field(alias="containerName", min_length=1)
    command_args: Tuple[str, ...] = Field(alias="commandArgs", min_length=1)
    project_root_dir: str = Field(alias="projectRootDir", min_length=1)
    debug_agent_host_path: str = Field(alias="dlvExePath", min_length=1)
    replacement_executable_host_path: Optional[str] = Field(default=None, alias="debugExePath")
    node_host: str = Field(default="", alias="nodeHost")
    debug_port: int = Field(alias="nodePort", gt=MIN_DEBUG_PORT, lt=MAX_DEBUG_PORT)

    @field_validator("workload_type", mode="before")
    @classmethod
    def _normalize_workload_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _WORKLOAD_TYPE_ALIASES.get(lowered, lowered)
        return value

    @field_validator("replacement_executable_host_path", mode="before")
    @classmethod
    def _empty_path_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _require_selector(self) -> "DebugProfile":
        if not self.label_selector and not self.field_selector:
            raise ValueError("labelSelector or fieldSelector is required")
        return self

    @property
    def label_selector_string(self) -> Optional[str]:
        """Label selector in the API's ``k=v,k2=v2`` form, or None when unset."""
        return _selector_string(self.label_selector)

    @property
    def field_selector_string(self) -> Optional[str]:
        return _selector_string(self.field_selector)


def _selector_string(selector: Dict[str, str]) -> Optional[str]:
    if not selector:
        return None
    return ",".join(f"{key}={value}" for key, value in selector.items())


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "profile"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(problems)


def parse_profile(data: Dict[str, Any]) -> DebugProfile:
    """
    Validate a raw mapping into a DebugProfile.

    Raises:
        ProfileError: If any field is missing or invalid
    """
    if not isinstance(data, dict):
        raise ProfileError("profile must be a mapping")
    try:
        return DebugProfile.model_validate(data)
    except ValidationError as e:
        raise ProfileError(_format_validation_error(e)) from e


def load_profile(path: Union[str, Path]) -> DebugProfile:
    """
    Read and validate a YAML profile file.

    Raises:
        ProfileError: If the file cannot be read, parsed or validated
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ProfileError(f"cannot read profile {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ProfileError(f"cannot parse profile {path}: {e}") from e

    return parse_profile(data)
