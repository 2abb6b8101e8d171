"""IAM execution role resolution (role name -> ARN)."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigurationError, TransportError, aws_error_code, aws_error_message
from .models import FunctionDeclaration, IdentityMap

logger = logging.getLogger("stack_provisioner.identity")

_CONFIGURATION_ERROR_CODES = {
    "NoSuchEntity",
    "NoSuchEntityException",
    "AccessDenied",
    "AccessDeniedException",
    "ValidationError",
}


class IdentityResolver:
    """Resolves each distinct execution role name exactly once per instance."""

    def __init__(self, iam_client: Any) -> None:
        self._client = iam_client
        self._cache: IdentityMap = {}

    def resolve(self, functions: Iterable[FunctionDeclaration]) -> IdentityMap:
        resolved: IdentityMap = {}
        for function in functions:
            role_name = function.role_name
            if role_name in resolved:
                continue
            resolved[role_name] = self.role_arn(role_name)
        logger.info("IAM roles verified. count=%s", len(resolved))
        return resolved

    def role_arn(self, role_name: str) -> str:
        if not role_name:
            raise ConfigurationError("IAM_ROLE_NAME_MISSING")
        cached = self._cache.get(role_name)
        if cached:
            return cached
        logger.debug("Checking IAM role name=%s", role_name)
        try:
            response = self._client.get_role(RoleName=role_name)
        except ClientError as exc:
            code = aws_error_code(exc)
            if code in _CONFIGURATION_ERROR_CODES:
                raise ConfigurationError("IAM_ROLE_UNRESOLVED", f"{role_name} ({code}: {aws_error_message(exc)})") from exc
            raise TransportError("IAM_GET_ROLE_FAILED", f"{role_name} ({code}: {aws_error_message(exc)})") from exc
        except BotoCoreError as exc:
            raise TransportError("IAM_GET_ROLE_FAILED", f"{role_name} ({exc})") from exc
        arn = str((response.get("Role") or {}).get("Arn") or "")
        if not arn:
            raise ConfigurationError("IAM_ROLE_UNRESOLVED", f"{role_name} (no Arn in response)")
        self._cache[role_name] = arn
        return arn
