"""Serverless stack provisioner package."""

from .config import ProvisionConfig
from .errors import BuildError, ConfigurationError, ConvergenceError, ProvisionError, TransportError
from .functions import LambdaFunction
from .models import ConvergeResult, FunctionDeclaration, WorkflowContext
from .workflow import ProvisioningWorkflow, WorkflowStep, provision

__all__ = [
    "BuildError",
    "ConfigurationError",
    "ConvergeResult",
    "ConvergenceError",
    "FunctionDeclaration",
    "LambdaFunction",
    "ProvisionConfig",
    "ProvisionError",
    "ProvisioningWorkflow",
    "TransportError",
    "WorkflowContext",
    "WorkflowStep",
    "provision",
]
