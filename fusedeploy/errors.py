"""
Error taxonomy for deployment orchestration.

Every failure that aborts a run derives from DeployError and names the
artifact (and action, for configuration steps) that failed. Nothing here
is retried automatically: re-running the orchestrator is the recovery path,
and it skips every step already recorded as satisfied.
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for all orchestration errors."""


class ConfigError(DeployError):
    """Configuration file is missing, malformed, or incomplete."""


class PlanError(DeployError):
    """A plan references an artifact that no earlier step provisions."""


class LedgerRejection(DeployError):
    """A deploy or call transaction was rejected, reverted, or timed out."""

    def __init__(self, message: str, *, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class AlreadySatisfied(DeployError):
    """
    Signal that a configuration effect is already in place.

    Not a failure: the sequencer swallows it, records the flag, and logs a skip.
    """


class IdentityCollision(DeployError):
    """Two distinct artifacts derived the same identity."""

    def __init__(self, identity: str, existing_name: str, new_name: str):
        super().__init__(
            f"Identity {identity} already belongs to {existing_name!r}; refusing to record {new_name!r}"
        )
        self.identity = identity
        self.existing_name = existing_name
        self.new_name = new_name


class EnvironmentMismatch(DeployError):
    """The target environment lacks account roles the plan requires."""

    def __init__(self, environment_id: str, missing_roles: list[str]):
        roles = ", ".join(sorted(missing_roles))
        super().__init__(f"Environment {environment_id!r} has no account for role(s): {roles}")
        self.environment_id = environment_id
        self.missing_roles = sorted(missing_roles)


class StepFailure(DeployError):
    """A plan step failed; carries the artifact name and underlying cause."""

    def __init__(self, artifact: str, cause: str):
        super().__init__(f"{artifact}: {cause}")
        self.artifact = artifact
        self.cause = cause


class DeploymentFailure(StepFailure):
    """Provisioning an artifact failed."""


class ConfigurationFailure(StepFailure):
    """A post-deploy configuration call failed."""

    def __init__(self, artifact: str, action: str, cause: str):
        super().__init__(artifact, f"{action} failed: {cause}")
        self.action = action
