"""
Idempotent deployment orchestration for the Fuse lending protocol.

A run derives each contract's address before touching the chain, deploys
only what the artifact store does not already hold, and applies each
one-time initialization exactly once:

- IdentityDeriver: CREATE2 address from (contract, constructor args, salt)
- ArtifactStore: per-environment record of deployed artifacts and applied flags
- Provisioner: deploy-if-absent
- InitializationSequencer: ordered provisioning and guarded configuration
- EnvironmentRouter: pick the environment-specific extension plan
- Orchestrator: resolve context, run base plan then extension
"""

__version__ = "0.1.0"

from .errors import (
    AlreadySatisfied,
    ConfigError,
    ConfigurationFailure,
    DeployError,
    DeploymentFailure,
    EnvironmentMismatch,
    IdentityCollision,
    LedgerRejection,
    PlanError,
    StepFailure,
)
from .identity import IdentityDeriver, compute_create2_address, derive_salt
from .journal import DeploymentJournal, JournalEvent
from .ledger import CallReceipt, DeployReceipt, LedgerClient, StaticAccounts, StaticEnvironment
from .orchestrator import Orchestrator, RunReport, resolve_context
from .plan import (
    ArtifactDescriptor,
    ArtifactRef,
    ConfigureStep,
    DeploymentPlan,
    EnvironmentContext,
    ProvisionStep,
    RoleRef,
)
from .provisioner import Provisioner
from .router import EnvironmentRouter
from .sequencer import InitializationSequencer, StepOutcome
from .store import ArtifactRecord, ArtifactStore

__all__ = [
    "__version__",
    # Errors
    "DeployError",
    "ConfigError",
    "PlanError",
    "LedgerRejection",
    "AlreadySatisfied",
    "IdentityCollision",
    "EnvironmentMismatch",
    "StepFailure",
    "DeploymentFailure",
    "ConfigurationFailure",
    # Identity
    "IdentityDeriver",
    "compute_create2_address",
    "derive_salt",
    # State
    "ArtifactRecord",
    "ArtifactStore",
    "DeploymentJournal",
    "JournalEvent",
    # Ledger seam
    "LedgerClient",
    "DeployReceipt",
    "CallReceipt",
    "StaticEnvironment",
    "StaticAccounts",
    # Plans
    "ArtifactDescriptor",
    "ArtifactRef",
    "RoleRef",
    "ProvisionStep",
    "ConfigureStep",
    "DeploymentPlan",
    "EnvironmentContext",
    # Engine
    "Provisioner",
    "InitializationSequencer",
    "StepOutcome",
    "EnvironmentRouter",
    "Orchestrator",
    "RunReport",
    "resolve_context",
]
