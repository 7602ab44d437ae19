"""
fake_ledger.py - In-memory ledger for PoolClient tests

Implements the LedgerClient protocol over a list of Accounts. Submitted plans
are applied at confirmation time, in submission order, the way blocks settle:
a plan whose inputs were consumed by an earlier request is rejected as stale.

Stand-ins for on-chain checks:
- every required signer must be in `signatures`
- a pool closed while remaining_actions > 0 fails "script execution"
"""

from __future__ import annotations
import hashlib
from typing import Callable, Dict, List, Optional, Set, Tuple

from raid_datum_codec import decode_record, encode_record
from raid_datum_types import Close, RaidPoolDatum
from raid_errors import ConfirmationTimeout
from raid_ledger_types import Account, AssetUnit, Confirmation, TransitionPlan, TxRef

MIN_UTXO = 1_200_000


class FakeLedger:
    """
    Example:
        ledger = FakeLedger(signatures={owner_pkh})
        ledger.fund(owner_address, 100_000_000)
        request_id = ledger.submit(plan)
        ledger.await_confirmation(request_id)
    """

    def __init__(self, signatures: Optional[Set[bytes]] = None):
        self.accounts: List[Account] = []
        self.signatures = set(signatures or ())
        self.pending: List[Tuple[str, TransitionPlan]] = []
        self.verdicts: Dict[str, Confirmation] = {}
        self.hold = False
        self.burned: Dict[AssetUnit, int] = {}
        self._counter = 0

    def _next_id(self) -> bytes:
        self._counter += 1
        return hashlib.sha256(f"fake-tx-{self._counter}".encode()).digest()

    def fund(self, address: str, coin: int, assets=None, datum: Optional[bytes] = None) -> Account:
        account = Account(TxRef(self._next_id(), 0), address, coin, dict(assets or {}), datum)
        self.accounts.append(account)
        return account

    # -------------------------------------------------------------------------
    # LedgerClient
    # -------------------------------------------------------------------------

    def find_accounts(self, address: str, unit: Optional[AssetUnit] = None) -> List[Account]:
        return [
            a for a in self.accounts
            if a.address == address and (unit is None or a.has_unit(unit))
        ]

    def submit(self, plan: TransitionPlan) -> str:
        request_id = self._next_id().hex()
        self.pending.append((request_id, plan))
        return request_id

    def await_confirmation(self, request_id: str, timeout: Optional[float] = None) -> Confirmation:
        if self.hold:
            raise ConfirmationTimeout(request_id, timeout or 0.0)
        self.settle()
        return self.verdicts[request_id]

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    def settle(self) -> None:
        pending, self.pending = self.pending, []
        for request_id, plan in pending:
            self.verdicts[request_id] = self._apply(request_id, plan)

    def _apply(self, request_id: str, plan: TransitionPlan) -> Confirmation:
        live = {a.ref for a in self.accounts}
        consumed = [a.ref for a in plan.consumed()]
        missing = [ref for ref in consumed if ref not in live]
        if missing:
            return Confirmation(request_id, False, f"BadInputsUTxO {missing[0]}", stale_input=True)

        unsigned = plan.required_signers - self.signatures
        if unsigned:
            return Confirmation(request_id, False, "MissingRequiredSigners")

        for spend in plan.spends:
            if isinstance(spend.redeemer, Close):
                datum = decode_record(RaidPoolDatum, spend.account.datum)
                if datum.remaining_actions > 0:
                    return Confirmation(request_id, False, "script execution failed: actions remaining")

        self.accounts = [a for a in self.accounts if a.ref not in set(consumed)]
        tx_id = bytes.fromhex(request_id)
        for index, output in enumerate(plan.outputs):
            self.accounts.append(Account(
                TxRef(tx_id, index),
                output.address,
                output.coin if output.coin is not None else MIN_UTXO,
                dict(output.assets),
                encode_record(output.datum) if output.datum is not None else None,
            ))
        for mint in plan.mints:
            if mint.quantity < 0:
                self.burned[mint.unit] = self.burned.get(mint.unit, 0) - mint.quantity
        return Confirmation(request_id, True)


class PassThroughAssembler:
    """Hands the plan to the ledger unchanged. `before_assemble` runs first."""

    def __init__(self, before_assemble: Optional[Callable[[TransitionPlan], None]] = None):
        self.before_assemble = before_assemble
        self.assembled: List[TransitionPlan] = []

    def assemble(self, plan: TransitionPlan) -> TransitionPlan:
        if self.before_assemble is not None:
            self.before_assemble(plan)
        self.assembled.append(plan)
        return plan
