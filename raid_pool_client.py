"""
Raid Pool Client - runs pool actions against a ledger.

Each action is a read-then-act sequence with no application-level lock:

    find current account(s) -> compute successor plan -> assemble -> submit
    -> await confirmation

The ledger is the only arbiter of races. When it rejects a request because
an input was already spent, the whole sequence is repeated from a fresh
read (up to max_retries). A confirmation timeout is passed through as is:
the outcome is unknown until the ledger is queried again.

Usage:
    client = PoolClient.from_config(config, ledger, assembler)
    client.mint_reference()
    client.mint_pool(initial_actions=10, reward_per_action=1_000_000)
    client.claim()
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Sequence

import raid_state_machine as machine
from raid_contract_config import FIXED_OVERHEAD, RaidConfig
from raid_datum_types import RaidPoolDatum, ReferencePoolDatum
from raid_errors import ConfigurationError, SubmissionRejected
from raid_identity import IdentityCatalog, catalog_from_config
from raid_ledger_types import Account, AssetUnit, Confirmation, TransitionPlan
from raid_script_params import Blueprint

logger = logging.getLogger(__name__)


# =============================================================================
# EXTERNAL COLLABORATORS
# =============================================================================

class LedgerClient(Protocol):
    """Account queries, submission and confirmation."""

    def find_accounts(self, address: str, unit: Optional[AssetUnit] = None) -> List[Account]:
        ...

    def submit(self, request: Any) -> str:
        ...

    def await_confirmation(self, request_id: str, timeout: Optional[float] = None) -> Confirmation:
        ...


class TransactionAssembler(Protocol):
    """Turns a TransitionPlan into a submittable request (fees, balancing, signing)."""

    def assemble(self, plan: TransitionPlan) -> Any:
        ...


@dataclass(frozen=True)
class ActionResult:
    action: str
    request_id: str
    plan: TransitionPlan
    attempts: int = 1


# =============================================================================
# CLIENT
# =============================================================================

class PoolClient:
    """
    One pool, one owner. Constructing a client performs no ledger call.
    A client built without an assembler can only read.

    Derived identities are fixed at construction; build a new client after
    changing any script parameter.
    """

    def __init__(
        self,
        catalog: IdentityCatalog,
        ledger: LedgerClient,
        assembler: Optional[TransactionAssembler],
        fixed_overhead: int = FIXED_OVERHEAD,
        allowed_locked_values: Sequence[int] = (FIXED_OVERHEAD,),
        confirm_timeout: Optional[float] = None,
        max_retries: int = 0,
    ):
        self.catalog = catalog
        self.ledger = ledger
        self.assembler = assembler
        self.fixed_overhead = fixed_overhead
        self.allowed_locked_values = tuple(allowed_locked_values)
        self.confirm_timeout = confirm_timeout
        self.max_retries = max_retries

    @classmethod
    def from_config(
        cls,
        config: RaidConfig,
        ledger: LedgerClient,
        assembler: TransactionAssembler,
        blueprint: Optional[Blueprint] = None,
    ) -> "PoolClient":
        return cls(
            catalog_from_config(config, blueprint),
            ledger,
            assembler,
            fixed_overhead=config.fixed_overhead,
            allowed_locked_values=config.allowed_locked_values,
            confirm_timeout=config.confirm_timeout,
            max_retries=config.max_retries,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_reference_account(self) -> Account:
        address, unit = self.catalog.reference_address, self.catalog.reference_unit
        return machine.select_singleton(self.ledger.find_accounts(address, unit), address, unit)

    def find_pool_account(self) -> Account:
        address, unit = self.catalog.pool_address, self.catalog.raid_unit
        return machine.select_singleton(self.ledger.find_accounts(address, unit), address, unit)

    def reference_datum(self) -> ReferencePoolDatum:
        return machine.read_reference_datum(self.find_reference_account())

    def pool_datum(self) -> RaidPoolDatum:
        return machine.read_pool_datum(self.find_pool_account())

    def state(self) -> machine.PoolState:
        address, unit = self.catalog.pool_address, self.catalog.raid_unit
        accounts = self.ledger.find_accounts(address, unit)
        if not accounts:
            return machine.pool_state(None)
        return machine.pool_state(machine.select_singleton(accounts, address, unit))

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def mint_reference(self, wallet_accounts: Optional[Sequence[Account]] = None) -> ActionResult:
        """Mint the reference token. Spends all owner accounts unless given a selection."""
        def build():
            address, unit = self.catalog.reference_address, self.catalog.reference_unit
            machine.check_unminted(self.ledger.find_accounts(address, unit), unit, "reference")
            accounts = wallet_accounts
            if accounts is None:
                accounts = self.ledger.find_accounts(self.catalog.owner_address)
            return machine.mint_reference(self.catalog, accounts, self.allowed_locked_values)
        return self._execute("mint_reference", build)

    def mint_pool(self, initial_actions: int, reward_per_action: int) -> ActionResult:
        """Mint the raid token. Only an uninitialized pool can be minted."""
        def build():
            address, unit = self.catalog.pool_address, self.catalog.raid_unit
            machine.check_unminted(self.ledger.find_accounts(address, unit), unit, "pool")
            return machine.mint_raid(
                self.catalog,
                self.find_reference_account(),
                initial_actions,
                reward_per_action,
                self.fixed_overhead,
            )
        return self._execute("mint_pool", build)

    def claim(self) -> ActionResult:
        return self._execute("claim", lambda: machine.claim(self.catalog, self.find_pool_account()))

    def update(self, new_remaining: int) -> ActionResult:
        return self._execute(
            "update", lambda: machine.update(self.catalog, self.find_pool_account(), new_remaining)
        )

    def close(self) -> ActionResult:
        return self._execute("close", lambda: machine.close(self.catalog, self.find_pool_account()))

    def update_reference(
        self,
        authorized_spending_hashes: Optional[Sequence[bytes]] = None,
        allowed_locked_values: Optional[Sequence[int]] = None,
    ) -> ActionResult:
        def build():
            return machine.update_reference(
                self.catalog,
                self.find_reference_account(),
                authorized_spending_hashes,
                allowed_locked_values,
            )
        return self._execute("update_reference", build)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _execute(self, action: str, build: Callable[[], TransitionPlan]) -> ActionResult:
        if self.assembler is None:
            raise ConfigurationError(f"{action} needs a transaction assembler (read-only client)")
        attempt = 0
        while True:
            attempt += 1
            plan = build()
            request = self.assembler.assemble(plan)
            try:
                request_id = self.ledger.submit(request)
                logger.info("Submitted %s as %s", action, request_id)
                verdict = self.ledger.await_confirmation(request_id, self.confirm_timeout)
                if not verdict.confirmed:
                    raise SubmissionRejected(verdict.reason, request_id, verdict.stale_input)
            except SubmissionRejected as e:
                if e.stale_input and attempt <= self.max_retries:
                    logger.warning("%s hit a stale input (%s); re-reading and retrying", action, e.reason)
                    continue
                raise
            logger.info("Confirmed %s: %s", action, request_id)
            return ActionResult(action=action, request_id=request_id, plan=plan, attempts=attempt)
