"""
Provisioning: deploy each artifact exactly once per identity.

The store is consulted first; an artifact already recorded as deployed at
the derived identity is returned without touching the ledger. Deploy
failures are not retried: the caller re-runs the whole plan, and this
check skips everything already done.
"""

from __future__ import annotations

import logging

from .errors import DeploymentFailure, IdentityCollision, LedgerRejection
from .identity import IdentityDeriver, normalize_value
from .ledger import LedgerClient
from .plan import ArtifactDescriptor, EnvironmentContext, resolve_args
from .store import ArtifactRecord, ArtifactStore

logger = logging.getLogger(__name__)


class Provisioner:
    def __init__(
        self,
        ledger: LedgerClient,
        deriver: IdentityDeriver | None = None,
        *,
        adopt_existing: bool = False,
    ):
        self.ledger = ledger
        self.deriver = deriver or IdentityDeriver()
        self.adopt_existing = adopt_existing

    def identity_for(
        self,
        descriptor: ArtifactDescriptor,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> str:
        args = resolve_args(descriptor.constructor_args, store, ctx)
        return self.deriver.derive(descriptor.contract_name, args, descriptor.salt)

    def is_satisfied(
        self,
        descriptor: ArtifactDescriptor,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> bool:
        """True if the store already holds a deployed record at the derived identity."""
        record = store.get(descriptor.name)
        if record is None or not record.deployed:
            return False
        return record.identity.lower() == self.identity_for(descriptor, ctx, store).lower()

    async def provision(
        self,
        descriptor: ArtifactDescriptor,
        ctx: EnvironmentContext,
        store: ArtifactStore,
    ) -> ArtifactRecord:
        name = descriptor.name
        args = resolve_args(descriptor.constructor_args, store, ctx)
        identity = self.deriver.derive(descriptor.contract_name, args, descriptor.salt)

        existing = store.get(name)
        if existing is not None and existing.deployed and existing.identity.lower() == identity.lower():
            logger.info("%s already deployed at %s", name, existing.identity)
            return existing
        if existing is not None and existing.identity.lower() != identity.lower():
            logger.warning(
                "%s identity changed (%s -> %s); constructor args or salt differ from the stored record",
                name,
                existing.identity,
                identity,
            )

        owner = store.find_by_identity(identity)
        if owner is not None and owner != name:
            raise IdentityCollision(identity, owner, name)

        deployer = ctx.account(descriptor.deployer)
        tx_hash: str | None = None

        if self.adopt_existing and await self._has_code(name, identity):
            logger.info("%s found on ledger at %s; recording without deploying", name, identity)
        else:
            logger.info("Deploying %s (%s) from %s", name, descriptor.contract_name, deployer)
            try:
                receipt = await self.ledger.deploy(descriptor.contract_name, args, deployer, descriptor.salt)
            except LedgerRejection as exc:
                raise DeploymentFailure(name, str(exc)) from exc
            if receipt.address.lower() != identity.lower():
                raise DeploymentFailure(
                    name,
                    f"ledger deployed at {receipt.address}, expected derived identity {identity}",
                )
            tx_hash = receipt.tx_hash
            logger.info("%s deployed at %s (tx %s)", name, identity, tx_hash or "-")

        record = ArtifactRecord(
            name=name,
            identity=identity,
            contract=descriptor.contract_name,
            deployed=True,
            tx_hash=tx_hash,
            deployer=deployer,
            args=normalize_value(args),
            initialized=set(),
        )
        store.put(name, record)
        return record

    async def _has_code(self, name: str, identity: str) -> bool:
        try:
            return await self.ledger.has_code(identity)
        except LedgerRejection as exc:
            raise DeploymentFailure(name, f"could not inspect {identity}: {exc}") from exc
