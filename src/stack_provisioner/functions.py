"""Lambda function declarations contributing AWS::Lambda::Function resources."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .models import ResourceMap, sanitized_name

DEFAULT_RUNTIME = "nodejs20.x"


@dataclass(frozen=True)
class LambdaFunction:
    name: str
    role_name: str
    description: str = ""
    memory_size: int = 128
    timeout_seconds: int = 3
    environment: dict[str, str] = field(default_factory=dict)
    runtime: str = DEFAULT_RUNTIME

    @property
    def export_name(self) -> str:
        return sanitized_name(self.name)

    @property
    def logical_id(self) -> str:
        return f"{self.export_name}Lambda"

    def contribute_resources(
        self,
        bucket: str,
        archive_key: str,
        role_arn: str,
        resources: ResourceMap,
    ) -> None:
        properties: dict[str, Any] = {
            "Code": {"S3Bucket": bucket, "S3Key": archive_key},
            "Description": self.description or self.name,
            "Handler": f"index.{self.export_name}",
            "MemorySize": self.memory_size,
            "Role": role_arn,
            "Runtime": self.runtime,
            "Timeout": self.timeout_seconds,
        }
        if self.environment:
            properties["Environment"] = {"Variables": dict(self.environment)}
        resources[self.logical_id] = {
            "Type": "AWS::Lambda::Function",
            "Properties": properties,
        }
