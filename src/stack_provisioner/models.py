"""Workflow state and function declaration contracts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .errors import ConfigurationError

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9]+")

IdentityMap = dict[str, str]
ResourceMap = dict[str, dict[str, Any]]


def sanitized_name(value: str) -> str:
    """Strip characters that are not valid in CloudFormation logical ids or JS identifiers."""
    cleaned = _UNSAFE_NAME_CHARS.sub("", value or "")
    if not cleaned:
        raise ConfigurationError("NAME_UNUSABLE", repr(value))
    return cleaned


class FunctionDeclaration(Protocol):
    name: str
    role_name: str

    def contribute_resources(
        self,
        bucket: str,
        archive_key: str,
        role_arn: str,
        resources: ResourceMap,
    ) -> None:
        ...


@dataclass
class WorkflowContext:
    """State threaded through one provisioning run. Owned by a single run."""

    service_name: str
    service_description: str
    functions: list[FunctionDeclaration]
    bucket: str
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("stack_provisioner.workflow"))
    identities: IdentityMap = field(default_factory=dict)
    archive_path: Path | None = None
    archive_key: str = ""
    template_url: str = ""
    result: "ConvergeResult | None" = None


@dataclass(frozen=True)
class ConvergeResult:
    stack_id: str
    stack_name: str
    operation: str
    status: str
    outputs: dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.operation != "noop"
