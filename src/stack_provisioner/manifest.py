"""Service manifest loader (YAML + env expansion + pydantic validation)."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import ProvisionConfig
from .errors import ConfigurationError
from .functions import LambdaFunction
from .models import sanitized_name

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class FunctionSpec(BaseModel):
    name: str
    role: str
    description: str = ""
    memory_size: int = Field(default=128, ge=128, le=10240)
    timeout_seconds: int = Field(default=3, ge=1, le=900)
    environment: dict[str, str] = {}
    runtime: str | None = None

    @field_validator("name", "role")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    def to_declaration(self, default_runtime: str) -> LambdaFunction:
        return LambdaFunction(
            name=self.name,
            role_name=self.role,
            description=self.description,
            memory_size=self.memory_size,
            timeout_seconds=self.timeout_seconds,
            environment=dict(self.environment),
            runtime=self.runtime or default_runtime,
        )


class ProvisionSettings(BaseModel):
    """Per-service overrides for ``ProvisionConfig``; unset fields keep the base value."""

    model_config = ConfigDict(extra="forbid")

    region: str | None = None
    max_attempts: int | None = Field(default=None, ge=1)
    endpoint_url: str | None = None
    create_timeout_minutes: int | None = Field(default=None, ge=1)
    initial_poll_seconds: float | None = Field(default=None, ge=0)
    poll_interval_seconds: float | None = Field(default=None, ge=0)
    work_dir: str | None = None
    build_command: list[str] | None = Field(default=None, min_length=1)
    build_env: dict[str, str] | None = None
    target_os: str | None = None
    target_arch: str | None = None
    lambda_runtime: str | None = None

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ServiceManifest(BaseModel):
    service: str
    description: str = ""
    bucket: str | None = None
    provision: ProvisionSettings = Field(default_factory=ProvisionSettings)
    functions: list[FunctionSpec]

    @field_validator("service")
    @classmethod
    def _service_usable(cls, value: str) -> str:
        value = value.strip()
        try:
            sanitized_name(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @field_validator("functions")
    @classmethod
    def _at_least_one(cls, value: list[FunctionSpec]) -> list[FunctionSpec]:
        if not value:
            raise ValueError("at least one function is required")
        return value

    def provision_config(self, base: ProvisionConfig | None = None) -> ProvisionConfig:
        base = base or ProvisionConfig.from_env()
        try:
            return base.with_overrides(self.provision.overrides())
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("MANIFEST_PROVISION_INVALID", str(exc)) from exc

    def declarations(self, config: ProvisionConfig) -> list[LambdaFunction]:
        return [spec.to_declaration(config.lambda_runtime) for spec in self.functions]


def _expand_str(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token:
            key, default = token.split(":-", 1)
            actual = os.getenv(key, "")
            return actual if actual.strip() else default
        actual = os.getenv(token, "")
        if not actual.strip():
            raise ConfigurationError("MANIFEST_ENV_MISSING", token)
        return actual

    return _VAR_PATTERN.sub(replacer, value)


def _expand_payload(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_str(value)
    if isinstance(value, list):
        return [_expand_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _expand_payload(item) for key, item in value.items()}
    return value


def load_manifest(path: Path) -> ServiceManifest:
    if not path.exists():
        raise ConfigurationError("MANIFEST_MISSING", str(path))
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigurationError("MANIFEST_INVALID", f"{path} is not a mapping")
    expanded = _expand_payload(data)
    try:
        return ServiceManifest(**expanded)
    except ValidationError as exc:
        raise ConfigurationError("MANIFEST_INVALID", str(exc)) from exc
