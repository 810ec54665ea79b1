"""
Declarative deployment plans.

A DeploymentPlan is an ordered tuple of steps:

- ProvisionStep: deploy an artifact (once per identity)
- ConfigureStep: call a named operation on an already-provisioned artifact,
  guarded by an idempotency predicate over the ArtifactStore

Arguments may hold ArtifactRef / RoleRef placeholders, resolved at run time
to the identity of an earlier artifact or to an account address. Ordering is
checked when the plan is built: a step may only reference artifacts that an
earlier step provisions (or that are declared available, for extension plans
running after a base plan).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence, Union

from .errors import EnvironmentMismatch, PlanError
from .identity import ArtifactKind
from .store import ArtifactStore


@dataclass(frozen=True)
class ArtifactRef:
    """Placeholder for the identity of a previously provisioned artifact."""

    name: str


@dataclass(frozen=True)
class RoleRef:
    """Placeholder for the address of a named account role."""

    role: str


# Returns True when the step's effect is already in place.
Guard = Callable[[ArtifactStore], bool]


def flag_set(target: str, flag: str) -> Guard:
    """Guard satisfied once `flag` is in the target's initialized set."""

    def _guard(store: ArtifactStore) -> bool:
        record = store.get(target)
        return record is not None and flag in record.initialized

    _guard.__name__ = f"flag_set({target}, {flag})"
    return _guard


@dataclass(frozen=True)
class EnvironmentContext:
    """Target environment identity and account roles for one invocation."""

    environment_id: str
    accounts: Mapping[str, str] = field(default_factory=dict)

    def account(self, role: str) -> str:
        try:
            return self.accounts[role]
        except KeyError:
            raise EnvironmentMismatch(self.environment_id, [role]) from None

    def require(self, roles: Iterable[str]) -> None:
        missing = [r for r in roles if r not in self.accounts]
        if missing:
            raise EnvironmentMismatch(self.environment_id, missing)


@dataclass(frozen=True)
class ArtifactDescriptor:
    name: str
    salt: bytes
    constructor_args: tuple[Any, ...] = ()
    deployer: str = "deployer"  # account role
    contract: str | None = None  # contract type; defaults to name
    kind: ArtifactKind = ArtifactKind.CONTRACT

    def __post_init__(self) -> None:
        object.__setattr__(self, "constructor_args", tuple(self.constructor_args))

    @property
    def contract_name(self) -> str:
        return self.contract or self.name


@dataclass(frozen=True)
class ProvisionStep:
    descriptor: ArtifactDescriptor

    @property
    def artifact(self) -> str:
        return self.descriptor.name

    @property
    def label(self) -> str:
        return f"provision:{self.descriptor.name}"

    def references(self) -> set[str]:
        return set(iter_artifact_refs(self.descriptor.constructor_args))

    def roles(self) -> set[str]:
        return {self.descriptor.deployer} | set(iter_role_refs(self.descriptor.constructor_args))


@dataclass(frozen=True)
class ConfigureStep:
    target: str
    action: str
    args: tuple[Any, ...] = ()
    flag: str | None = None  # recorded in target.initialized; defaults to action
    caller: str = "deployer"  # account role
    guard: Guard | None = None  # defaults to flag_set(target, flag)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def artifact(self) -> str:
        return self.target

    @property
    def effective_flag(self) -> str:
        return self.flag or self.action

    @property
    def label(self) -> str:
        return f"configure:{self.target}.{self.action}[{self.effective_flag}]"

    def is_satisfied(self, store: ArtifactStore) -> bool:
        guard = self.guard or flag_set(self.target, self.effective_flag)
        return guard(store)

    def references(self) -> set[str]:
        return {self.target} | set(iter_artifact_refs(self.args))

    def roles(self) -> set[str]:
        return {self.caller} | set(iter_role_refs(self.args))


Step = Union[ProvisionStep, ConfigureStep]


def _walk(value: Any) -> Iterator[Any]:
    if isinstance(value, (list, tuple)):
        for item in value:
            yield from _walk(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _walk(item)
    else:
        yield value


def iter_artifact_refs(args: Iterable[Any]) -> Iterator[str]:
    for value in _walk(list(args)):
        if isinstance(value, ArtifactRef):
            yield value.name


def iter_role_refs(args: Iterable[Any]) -> Iterator[str]:
    for value in _walk(list(args)):
        if isinstance(value, RoleRef):
            yield value.role


def resolve_value(value: Any, store: ArtifactStore, ctx: EnvironmentContext) -> Any:
    """Replace placeholders with concrete addresses, preserving structure."""
    if isinstance(value, ArtifactRef):
        record = store.get(value.name)
        if record is None or not record.deployed:
            raise PlanError(f"Artifact {value.name!r} is referenced before it has been provisioned")
        return record.identity
    if isinstance(value, RoleRef):
        return ctx.account(value.role)
    if isinstance(value, tuple):
        return tuple(resolve_value(v, store, ctx) for v in value)
    if isinstance(value, list):
        return [resolve_value(v, store, ctx) for v in value]
    if isinstance(value, dict):
        return {k: resolve_value(v, store, ctx) for k, v in value.items()}
    return value


def resolve_args(args: Sequence[Any], store: ArtifactStore, ctx: EnvironmentContext) -> list[Any]:
    return [resolve_value(v, store, ctx) for v in args]


class DeploymentPlan:
    """
    Ordered, validated sequence of steps.

    Raises PlanError at construction if any step references an artifact
    that is neither provisioned by an earlier step nor listed in `available`.
    """

    def __init__(self, name: str, steps: Sequence[Step], *, available: Iterable[str] = ()):
        self.name = name
        self.steps: tuple[Step, ...] = tuple(steps)
        self.validate(available=available)

    def validate(self, *, available: Iterable[str] = ()) -> None:
        known = set(available)
        for index, step in enumerate(self.steps, start=1):
            missing = sorted(step.references() - known)
            if missing:
                raise PlanError(
                    f"{self.name} step {index} ({step.label}) references {', '.join(missing)} "
                    "before any earlier step provisions it"
                )
            if isinstance(step, ProvisionStep):
                known.add(step.artifact)

    def artifacts(self) -> list[str]:
        """Names provisioned by this plan, in step order, without duplicates."""
        names: dict[str, None] = {}
        for step in self.steps:
            if isinstance(step, ProvisionStep):
                names.setdefault(step.artifact, None)
        return list(names)

    def roles(self) -> set[str]:
        roles: set[str] = set()
        for step in self.steps:
            roles |= step.roles()
        return roles

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        return f"DeploymentPlan({self.name!r}, steps={len(self.steps)})"
