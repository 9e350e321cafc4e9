from .artifact import Artifact
from .artifact_store import ArtifactStore
from .context import StepContext
from .dag import Dag, DependencyResolver
from .discovery import StepDiscoveryError, deploy_step, discover_steps
from .engine import ExecutionEngine
from .environment import Environment
from .errors import (
    ActionFailure,
    ArtifactWriteDenied,
    CyclicDependency,
    DeployKernelError,
    DuplicateId,
    DuplicateName,
    DuplicateProducer,
    GateEvaluationError,
    GraphError,
    MissingArtifact,
    StepError,
    UnknownStep,
    UnresolvedDependency,
)
from .run_result import Outcome, RunResult, StepResult
from .selection import TagSelector
from .step import SKIP, Step, any_tag, logical_name, require_tag
from .step_registry import StepRegistry

# Kernel exports cover the data model, the graph components and the engine.
__all__ = [
    "Artifact",
    "ArtifactStore",
    "StepContext",
    "Dag",
    "DependencyResolver",
    "StepDiscoveryError",
    "deploy_step",
    "discover_steps",
    "ExecutionEngine",
    "Environment",
    "ActionFailure",
    "ArtifactWriteDenied",
    "CyclicDependency",
    "DeployKernelError",
    "DuplicateId",
    "DuplicateName",
    "DuplicateProducer",
    "GateEvaluationError",
    "GraphError",
    "MissingArtifact",
    "StepError",
    "UnknownStep",
    "UnresolvedDependency",
    "Outcome",
    "RunResult",
    "StepResult",
    "TagSelector",
    "SKIP",
    "Step",
    "any_tag",
    "logical_name",
    "require_tag",
    "StepRegistry",
]
