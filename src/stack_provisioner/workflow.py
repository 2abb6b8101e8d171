"""Provisioning workflow: verify roles, package, upload, converge.

Steps run strictly in order against a single ``WorkflowContext``. Each step
handler returns the next step (or ``None`` when the run is complete); any
exception halts the run. If the archive was already uploaded when a step
fails, the remote object is removed before the original error is re-raised.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Sequence

from .aws import AwsClients, build_clients
from .builder import ArtifactBuilder
from .config import ProvisionConfig
from .errors import ProvisionError, reason_code
from .identity import IdentityResolver
from .models import ConvergeResult, FunctionDeclaration, WorkflowContext
from .publisher import ArtifactPublisher
from .stack import StackConvergenceEngine
from .template import render_template, synthesize_template


class WorkflowStep(str, Enum):
    VERIFY_ROLES = "VERIFY_ROLES"
    PACKAGE = "PACKAGE"
    UPLOAD = "UPLOAD"
    CONVERGE = "CONVERGE"


StepHandler = Callable[[WorkflowContext], "WorkflowStep | None"]


class ProvisioningWorkflow:
    def __init__(
        self,
        *,
        identity_resolver: IdentityResolver,
        builder: ArtifactBuilder,
        publisher: ArtifactPublisher,
        stack_engine: StackConvergenceEngine,
    ) -> None:
        self.identity_resolver = identity_resolver
        self.builder = builder
        self.publisher = publisher
        self.stack_engine = stack_engine
        self._handlers: dict[WorkflowStep, StepHandler] = {
            WorkflowStep.VERIFY_ROLES: self._verify_roles,
            WorkflowStep.PACKAGE: self._package,
            WorkflowStep.UPLOAD: self._upload,
            WorkflowStep.CONVERGE: self._converge,
        }

    @classmethod
    def build(cls, config: ProvisionConfig, clients: AwsClients | None = None) -> "ProvisioningWorkflow":
        clients = clients or build_clients(config)
        return cls(
            identity_resolver=IdentityResolver(clients.iam),
            builder=ArtifactBuilder(config),
            publisher=ArtifactPublisher(clients.s3, config),
            stack_engine=StackConvergenceEngine(clients.cloudformation, config),
        )

    def run(self, ctx: WorkflowContext) -> ConvergeResult:
        step: WorkflowStep | None = WorkflowStep.VERIFY_ROLES
        try:
            while step is not None:
                ctx.logger.debug("Workflow step=%s service=%s", step.value, ctx.service_name)
                step = self._handlers[step](ctx)
            if ctx.result is None:
                raise ProvisionError("WORKFLOW_INCOMPLETE", ctx.service_name)
        except Exception as exc:
            ctx.logger.error("Provisioning failed step=%s reason=%s: %s", step.value if step else "", reason_code(exc), exc)
            self._cleanup(ctx)
            raise
        return ctx.result

    def _cleanup(self, ctx: WorkflowContext) -> None:
        if not ctx.archive_key:
            return
        ctx.logger.info("Attempting to cleanup ZIP archive: %s", ctx.archive_key)
        try:
            self.publisher.delete_archive(ctx.bucket, ctx.archive_key)
        except Exception as exc:
            ctx.logger.warning("Failed to delete archive %s: %s", ctx.archive_key, exc)

    def _verify_roles(self, ctx: WorkflowContext) -> WorkflowStep | None:
        ctx.logger.info("Verifying IAM Lambda execution roles")
        ctx.identities = self.identity_resolver.resolve(ctx.functions)
        return WorkflowStep.PACKAGE

    def _package(self, ctx: WorkflowContext) -> WorkflowStep | None:
        archive = self.builder.build(ctx.service_name, ctx.functions)
        ctx.archive_path = archive.path
        return WorkflowStep.UPLOAD

    def _upload(self, ctx: WorkflowContext) -> WorkflowStep | None:
        if ctx.archive_path is None:
            raise ProvisionError("ARCHIVE_MISSING", ctx.service_name)
        published = self.publisher.publish_archive(ctx.archive_path, ctx.bucket)
        ctx.archive_path = None
        ctx.archive_key = published.key
        return WorkflowStep.CONVERGE

    def _converge(self, ctx: WorkflowContext) -> WorkflowStep | None:
        template = synthesize_template(
            ctx.service_description,
            ctx.functions,
            ctx.identities,
            ctx.bucket,
            ctx.archive_key,
        )
        body = render_template(template)
        published = self.publisher.publish_template(ctx.service_name, ctx.bucket, body)
        ctx.template_url = published.location
        ctx.result = self.stack_engine.converge(ctx.service_name, published.location)
        ctx.logger.info("Stack provisioned: %s status=%s", ctx.result.stack_id, ctx.result.status)
        return None


def provision(
    service_name: str,
    service_description: str,
    functions: Sequence[FunctionDeclaration],
    bucket: str,
    *,
    config: ProvisionConfig | None = None,
    clients: AwsClients | None = None,
    logger: logging.Logger | None = None,
) -> ConvergeResult:
    """Compile, package and create-or-update the service's CloudFormation stack.

    ``service_name`` doubles as the stack name and decides between create and
    update. Runs against the same service name must be serialized by the caller.
    """
    config = config or ProvisionConfig.from_env()
    ctx = WorkflowContext(
        service_name=service_name,
        service_description=service_description,
        functions=list(functions),
        bucket=bucket,
    )
    if logger is not None:
        ctx.logger = logger
    return ProvisioningWorkflow.build(config, clients).run(ctx)
