"""Provisioning configuration (region, SDK retries, build target, polling)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any

DEFAULT_REGION = "us-east-1"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BUILD_COMMAND = ("go", "build", "-o", "{output}", "-tags", "lambdabinary", ".")


@dataclass(frozen=True)
class ProvisionConfig:
    region: str = DEFAULT_REGION
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    endpoint_url: str | None = None
    create_timeout_minutes: int = 5
    initial_poll_seconds: float = 10.0
    poll_interval_seconds: float = 20.0
    work_dir: str = "."
    build_command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    build_env: dict[str, str] = field(default_factory=dict)
    target_os: str = "linux"
    target_arch: str = "amd64"
    lambda_runtime: str = "nodejs20.x"

    @classmethod
    def from_env(cls, **overrides: Any) -> "ProvisionConfig":
        region = (os.getenv("AWS_DEFAULT_REGION") or os.getenv("AWS_REGION") or "").strip() or DEFAULT_REGION
        endpoint = (os.getenv("AWS_ENDPOINT_URL") or "").strip() or None
        config = cls(region=region, endpoint_url=endpoint)
        if overrides:
            config = config.with_overrides(overrides)
        return config

    def with_overrides(self, overrides: dict[str, Any]) -> "ProvisionConfig":
        known = set(self.__dataclass_fields__)
        unknown = sorted(key for key in overrides if key not in known)
        if unknown:
            raise ValueError(f"PROVISION_CONFIG_UNKNOWN_KEYS:{','.join(unknown)}")
        values = {key: value for key, value in overrides.items() if value is not None}
        if "build_command" in values:
            values["build_command"] = tuple(str(part) for part in values["build_command"])
        if "build_env" in values:
            values["build_env"] = {str(k): str(v) for k, v in dict(values["build_env"]).items()}
        return replace(self, **values)

    def compiler_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update({"GOOS": self.target_os, "GOARCH": self.target_arch})
        env.update(self.build_env)
        return env
