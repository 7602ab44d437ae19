"""
Raid Cardano Backend - pycardano implementations of the ledger client and
the transaction assembler.

ChainContextLedger: account queries, submission and confirmation polling on
    any pycardano ChainContext (Blockfrost, Ogmios, ...).
PyCardanoAssembler: turns a TransitionPlan into a balanced, signed
    transaction with TransactionBuilder. Fee and coin selection stay inside
    pycardano.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

import pycardano as pc
from blockfrost import ApiUrls

from raid_contract_config import RaidConfig
from raid_errors import ConfigurationError, ConfirmationTimeout, SubmissionRejected
from raid_identity import IdentityCatalog
from raid_ledger_types import Account, AssetUnit, Confirmation, Output, TransitionPlan, TxRef

logger = logging.getLogger(__name__)

# Node error for inputs that are already spent (or never existed)
STALE_INPUT_MARKERS = ("BadInputsUTxO", "UtxoFailure (BadInputs")


def blockfrost_context(config: RaidConfig) -> pc.ChainContext:
    """Blockfrost chain context for the configured network."""
    if not config.blockfrost_project_id:
        raise ConfigurationError("blockfrost_project_id is required (or set RAID_BLOCKFROST_PROJECT_ID)")
    return pc.BlockFrostChainContext(
        project_id=config.blockfrost_project_id,
        base_url=getattr(ApiUrls, config.network).value,
    )


# =============================================================================
# CONVERSIONS
# =============================================================================

def account_from_utxo(utxo: pc.UTxO) -> Account:
    """Off-chain view of a pycardano UTxO (the UTxO is kept for the assembler)."""
    output = utxo.output
    assets: Dict[AssetUnit, int] = {}
    for policy, tokens in output.amount.multi_asset.items():
        for name, quantity in tokens.items():
            assets[AssetUnit(policy.payload, name.payload)] = quantity

    datum = None
    if isinstance(output.datum, pc.RawCBOR):
        datum = output.datum.cbor
    elif output.datum is not None:
        datum = output.datum.to_cbor()

    return Account(
        ref=TxRef(utxo.input.transaction_id.payload, utxo.input.index),
        address=str(output.address),
        coin=output.amount.coin,
        assets=assets,
        datum=datum,
        raw=utxo,
    )


def multi_asset(assets: Dict[AssetUnit, int]) -> pc.MultiAsset:
    result = pc.MultiAsset()
    for unit, quantity in assets.items():
        policy = pc.ScriptHash(unit.policy_id)
        if policy not in result:
            result[policy] = pc.Asset()
        result[policy][pc.AssetName(unit.name)] = quantity
    return result


def utxo_from_account(account: Account) -> pc.UTxO:
    if isinstance(account.raw, pc.UTxO):
        return account.raw
    datum = pc.RawCBOR(account.datum) if account.datum is not None else None
    return pc.UTxO(
        pc.TransactionInput(pc.TransactionId(account.ref.tx_id), account.ref.index),
        pc.TransactionOutput(
            pc.Address.from_primitive(account.address),
            pc.Value(account.coin, multi_asset(account.assets)),
            datum=datum,
        ),
    )


# =============================================================================
# LEDGER CLIENT
# =============================================================================

class ChainContextLedger:
    """
    Ledger client over a pycardano ChainContext.

    Confirmation is detected by polling the address of the request's first
    output for an output created by that transaction.
    """

    def __init__(
        self,
        context: pc.ChainContext,
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self._watch: Dict[str, str] = {}

    def find_accounts(self, address: str, unit: Optional[AssetUnit] = None) -> List[Account]:
        accounts = [account_from_utxo(u) for u in self.context.utxos(address)]
        if unit is not None:
            accounts = [a for a in accounts if a.has_unit(unit)]
        return accounts

    def submit(self, tx: pc.Transaction) -> str:
        try:
            self.context.submit_tx(tx)
        except pc.TransactionFailedException as e:
            reason = str(e)
            stale = any(marker in reason for marker in STALE_INPUT_MARKERS)
            raise SubmissionRejected(reason, tx.id.payload.hex(), stale_input=stale) from e
        request_id = tx.id.payload.hex()
        self._watch[request_id] = str(tx.transaction_body.outputs[0].address)
        return request_id

    def await_confirmation(self, request_id: str, timeout: Optional[float] = None) -> Confirmation:
        if request_id not in self._watch:
            raise KeyError(f"request {request_id} was not submitted through this ledger client")
        address = self._watch[request_id]
        deadline = None if timeout is None else self.clock() + timeout
        while True:
            for utxo in self.context.utxos(address):
                if utxo.input.transaction_id.payload.hex() == request_id:
                    del self._watch[request_id]
                    return Confirmation(request_id, confirmed=True)
            if deadline is not None and self.clock() >= deadline:
                raise ConfirmationTimeout(request_id, timeout)
            logger.debug("Waiting for %s at %s", request_id, address)
            self.sleep(self.poll_interval)


# =============================================================================
# TRANSACTION ASSEMBLER
# =============================================================================

class PyCardanoAssembler:
    """
    Builds and signs transactions for TransitionPlans.

    Fees and extra funding come from `change_address` (the owner address by
    default), which also receives change and any released pool lovelace.
    """

    def __init__(
        self,
        context: pc.ChainContext,
        catalog: IdentityCatalog,
        signing_key: pc.SigningKey,
        change_address: Optional[str] = None,
    ):
        self.context = context
        self.catalog = catalog
        self.signing_key = signing_key
        self.change_address = pc.Address.from_primitive(change_address or catalog.owner_address)

    def _output(self, output: Output) -> pc.TransactionOutput:
        address = pc.Address.from_primitive(output.address)
        assets = multi_asset(output.assets)
        coin = output.coin
        if coin is None:
            # Inline datums are serialized with indefinite lists; pad one byte
            # worth of lovelace so the node's definite-length size still fits.
            coin = pc.min_lovelace(
                self.context,
                output=pc.TransactionOutput(address, pc.Value(0, assets), datum=output.datum),
            ) + self.context.protocol_param.coins_per_utxo_byte
        return pc.TransactionOutput(address, pc.Value(coin, assets), datum=output.datum)

    def assemble(self, plan: TransitionPlan) -> pc.Transaction:
        builder = pc.TransactionBuilder(self.context)

        for account in plan.wallet_inputs:
            builder.add_input(utxo_from_account(account))

        for spend in plan.spends:
            builder.add_script_input(
                utxo_from_account(spend.account),
                script=self.catalog.script(spend.role).script,
                redeemer=pc.Redeemer(spend.redeemer),
            )

        for account in plan.reference_inputs:
            builder.reference_inputs.add(utxo_from_account(account))

        if plan.mints:
            builder.mint = multi_asset({m.unit: m.quantity for m in plan.mints})
            attached = set()
            for mint in plan.mints:
                if mint.role in attached:
                    continue
                attached.add(mint.role)
                builder.add_minting_script(
                    self.catalog.script(mint.role).script,
                    redeemer=pc.Redeemer(mint.redeemer),
                )

        for output in plan.outputs:
            builder.add_output(self._output(output))

        builder.required_signers = [pc.VerificationKeyHash(pkh) for pkh in sorted(plan.required_signers)]
        builder.add_input_address(self.change_address)

        tx = builder.build_and_sign([self.signing_key], change_address=self.change_address)
        logger.debug("Assembled %s as %s (fee %d)", plan.action, tx.id.payload.hex(), tx.transaction_body.fee)
        return tx
