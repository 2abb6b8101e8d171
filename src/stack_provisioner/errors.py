"""Provisioning error taxonomy and helpers."""

from __future__ import annotations


class ProvisionError(RuntimeError):
    """Stable error surfaced to callers as a reason code."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = f"{code}:{detail}" if detail else code
        super().__init__(message)


class ConfigurationError(ProvisionError):
    """Caller declarations or settings are invalid; never retried."""


class BuildError(ProvisionError):
    """Compilation or packaging failed on the local host."""


class TransportError(ProvisionError):
    """A call to IAM, S3 or CloudFormation failed."""


class ConvergenceError(ProvisionError):
    """The remote stack settled in a failed terminal status."""


def reason_code(exc: Exception) -> str:
    if isinstance(exc, ProvisionError):
        return exc.code
    text = str(exc or "").strip()
    if text.isupper():
        return text
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isupper():
            return head
    return "INTERNAL_ERROR"


def aws_error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        code = response.get("Error", {}).get("Code")
        if code:
            return str(code)
    return exc.__class__.__name__


def aws_error_message(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        message = response.get("Error", {}).get("Message")
        if message:
            return str(message)
    return str(exc)
