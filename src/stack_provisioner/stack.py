"""CloudFormation stack convergence (create-or-update, poll, diagnose)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from botocore.exceptions import BotoCoreError, ClientError

from .config import ProvisionConfig
from .errors import ConvergenceError, TransportError, aws_error_code, aws_error_message
from .models import ConvergeResult

logger = logging.getLogger("stack_provisioner.stack")

TRANSITIONAL_SUFFIX = "_IN_PROGRESS"

SUCCESS_STATUSES = frozenset({"CREATE_COMPLETE", "UPDATE_COMPLETE", "IMPORT_COMPLETE"})
FAILURE_STATUSES = frozenset(
    {
        # create failures under OnFailure=DELETE end here
        "DELETE_COMPLETE",
        "DELETE_FAILED",
        "CREATE_FAILED",
        "ROLLBACK_COMPLETE",
        "ROLLBACK_FAILED",
        "UPDATE_FAILED",
        "UPDATE_ROLLBACK_COMPLETE",
        "UPDATE_ROLLBACK_FAILED",
        "IMPORT_ROLLBACK_COMPLETE",
        "IMPORT_ROLLBACK_FAILED",
    }
)
FAILED_RESOURCE_STATUSES = frozenset({"CREATE_FAILED", "DELETE_FAILED", "UPDATE_FAILED"})

_NO_UPDATES_MESSAGE = "No updates are to be performed"


class StackOutcome(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    UNRECOGNIZED = "UNRECOGNIZED"


def classify_status(status: str) -> StackOutcome:
    if status.endswith(TRANSITIONAL_SUFFIX):
        return StackOutcome.IN_PROGRESS
    if status in SUCCESS_STATUSES:
        return StackOutcome.SUCCEEDED
    if status in FAILURE_STATUSES:
        return StackOutcome.FAILED
    return StackOutcome.UNRECOGNIZED


@dataclass(frozen=True)
class ResourceFailure:
    resource_type: str
    logical_id: str
    status: str
    reason: str


def _is_missing_stack(exc: ClientError) -> bool:
    return aws_error_code(exc) == "ValidationError" and "does not exist" in aws_error_message(exc)


def _transport_error(code: str, target: str, exc: Exception) -> TransportError:
    if isinstance(exc, ClientError):
        return TransportError(code, f"{target} ({aws_error_code(exc)}: {aws_error_message(exc)})")
    return TransportError(code, f"{target} ({exc})")


class StackConvergenceEngine:
    def __init__(self, cloudformation_client: Any, config: ProvisionConfig) -> None:
        self._client = cloudformation_client
        self.config = config

    def describe_stack(self, stack_name_or_id: str) -> dict[str, Any] | None:
        """Return the stack description, or None when the stack does not exist."""
        try:
            response = self._client.describe_stacks(StackName=stack_name_or_id)
        except ClientError as exc:
            if _is_missing_stack(exc):
                return None
            raise _transport_error("CFN_DESCRIBE_FAILED", stack_name_or_id, exc) from exc
        except BotoCoreError as exc:
            raise _transport_error("CFN_DESCRIBE_FAILED", stack_name_or_id, exc) from exc
        stacks = response.get("Stacks") or []
        if not stacks:
            return None
        return stacks[0]

    def stack_exists(self, stack_name_or_id: str) -> bool:
        return self.describe_stack(stack_name_or_id) is not None

    def converge(self, stack_name: str, template_url: str) -> ConvergeResult:
        existing = self.describe_stack(stack_name)
        if existing is not None:
            try:
                response = self._client.update_stack(StackName=stack_name, TemplateURL=template_url)
            except ClientError as exc:
                if aws_error_code(exc) == "ValidationError" and _NO_UPDATES_MESSAGE in aws_error_message(exc):
                    logger.info("Stack %s already matches template; nothing to update", stack_name)
                    return self._result(existing, stack_name, "noop")
                raise _transport_error("CFN_UPDATE_FAILED", stack_name, exc) from exc
            except BotoCoreError as exc:
                raise _transport_error("CFN_UPDATE_FAILED", stack_name, exc) from exc
            operation = "update"
            stack_id = str(response["StackId"])
            logger.info("Issued update request: %s", stack_id)
        else:
            try:
                response = self._client.create_stack(
                    StackName=stack_name,
                    TemplateURL=template_url,
                    TimeoutInMinutes=self.config.create_timeout_minutes,
                    OnFailure="DELETE",
                )
            except (ClientError, BotoCoreError) as exc:
                raise _transport_error("CFN_CREATE_FAILED", stack_name, exc) from exc
            operation = "create"
            stack_id = str(response["StackId"])
            logger.info("Creating stack: %s", stack_id)

        stack = self.wait_for_stack(stack_id)
        status = str(stack.get("StackStatus") or "")
        outcome = classify_status(status)
        if outcome is StackOutcome.SUCCEEDED:
            return self._result(stack, stack_name, operation)

        logger.error("Stack provisioning failed. stack=%s status=%s", stack_name, status)
        self.report_failures(stack_id)
        if outcome is StackOutcome.UNRECOGNIZED:
            raise ConvergenceError("STACK_STATUS_UNRECOGNIZED", f"{stack_name} status={status}")
        raise ConvergenceError("STACK_PROVISION_FAILED", f"{stack_name} status={status}")

    def wait_for_stack(self, stack_id: str) -> dict[str, Any]:
        """Sleep-then-poll until the stack leaves every *_IN_PROGRESS status."""
        logger.info("Waiting for stack to complete")
        time.sleep(self.config.initial_poll_seconds)
        while True:
            stack = self.describe_stack(stack_id)
            if stack is None:
                raise ConvergenceError("STACK_NOT_FOUND", stack_id)
            status = str(stack.get("StackStatus") or "")
            logger.info("Current state: %s", status)
            if classify_status(status) is not StackOutcome.IN_PROGRESS:
                return stack
            time.sleep(self.config.poll_interval_seconds)

    def stack_events(self, stack_id: str) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        paginator = self._client.get_paginator("describe_stack_events")
        try:
            for page in paginator.paginate(StackName=stack_id):
                events.extend(page.get("StackEvents") or [])
        except (ClientError, BotoCoreError) as exc:
            raise _transport_error("CFN_EVENTS_FAILED", stack_id, exc) from exc
        return events

    def report_failures(self, stack_id: str) -> list[ResourceFailure]:
        try:
            events = self.stack_events(stack_id)
        except TransportError as exc:
            logger.warning("Unable to read stack events for diagnostics: %s", exc)
            return []
        failures = failed_resources(events)
        for failure in failures:
            logger.error(
                "\tError ensuring %s (%s): %s",
                failure.resource_type,
                failure.logical_id,
                failure.reason,
            )
        return failures

    def _result(self, stack: dict[str, Any], stack_name: str, operation: str) -> ConvergeResult:
        outputs = {
            str(item.get("OutputKey")): str(item.get("OutputValue", ""))
            for item in stack.get("Outputs") or []
            if item.get("OutputKey")
        }
        return ConvergeResult(
            stack_id=str(stack.get("StackId") or ""),
            stack_name=stack_name,
            operation=operation,
            status=str(stack.get("StackStatus") or ""),
            outputs=outputs,
        )


def failed_resources(events: Iterable[dict[str, Any]]) -> list[ResourceFailure]:
    failures: list[ResourceFailure] = []
    for event in events:
        status = str(event.get("ResourceStatus") or "")
        if status not in FAILED_RESOURCE_STATUSES:
            continue
        failures.append(
            ResourceFailure(
                resource_type=str(event.get("ResourceType") or ""),
                logical_id=str(event.get("LogicalResourceId") or ""),
                status=status,
                reason=str(event.get("ResourceStatusReason") or ""),
            )
        )
    return failures
