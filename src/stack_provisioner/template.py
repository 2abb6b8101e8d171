"""CloudFormation template synthesis from function declarations."""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from .errors import ConfigurationError, ProvisionError
from .models import FunctionDeclaration, IdentityMap, ResourceMap

logger = logging.getLogger("stack_provisioner.template")

TEMPLATE_FORMAT_VERSION = "2010-09-09"


def synthesize_template(
    description: str,
    functions: Sequence[FunctionDeclaration],
    identities: IdentityMap,
    bucket: str,
    archive_key: str,
) -> dict[str, Any]:
    """Union every declaration's resources into one template.

    Each declaration contributes into its own scratch map; names already claimed
    by an earlier declaration fail the synthesis instead of being overwritten.
    """
    resources: ResourceMap = {}
    owners: dict[str, str] = {}
    for function in functions:
        role_arn = identities.get(function.role_name)
        if not role_arn:
            raise ConfigurationError("IAM_ROLE_NOT_RESOLVED", f"{function.name} -> {function.role_name}")
        contributed: ResourceMap = {}
        try:
            function.contribute_resources(bucket, archive_key, role_arn, contributed)
        except ProvisionError:
            raise
        except Exception as exc:
            raise ConfigurationError("RESOURCE_CONTRIBUTION_FAILED", f"{function.name}: {exc}") from exc
        for logical_name, resource in contributed.items():
            if logical_name in resources:
                raise ConfigurationError(
                    "RESOURCE_NAME_COLLISION",
                    f"{logical_name} ({owners[logical_name]}, {function.name})",
                )
            resources[logical_name] = resource
            owners[logical_name] = function.name
    logger.debug("Synthesized %s resources from %s functions", len(resources), len(functions))
    return {
        "AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION,
        "Description": description,
        "Resources": resources,
    }


def render_template(template: dict[str, Any]) -> str:
    """Canonical JSON so the storage key is a function of content only."""
    return json.dumps(template, sort_keys=True, ensure_ascii=True, separators=(",", ":"))
