"""boto3 client construction for the provisioning workflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from .config import ProvisionConfig


@dataclass(frozen=True)
class AwsClients:
    iam: Any
    s3: Any
    cloudformation: Any


def client_config(config: ProvisionConfig) -> Config:
    return Config(
        region_name=config.region,
        retries={"max_attempts": config.max_attempts, "mode": "standard"},
    )


def build_clients(config: ProvisionConfig) -> AwsClients:
    session = boto3.session.Session(region_name=config.region)
    botocore_config = client_config(config)

    def make(service: str) -> Any:
        return session.client(service, endpoint_url=config.endpoint_url, config=botocore_config)

    return AwsClients(iam=make("iam"), s3=make("s3"), cloudformation=make("cloudformation"))
