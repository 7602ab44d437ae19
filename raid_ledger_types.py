"""
Raid Ledger Types - Off-chain views of accounts and transition plans.

An Account is an immutable UTxO: consumed whole, never mutated. A
TransitionPlan is what the state machine hands to the transaction assembler:
accounts to spend (with redeemers), read-only reference accounts, outputs to
create, tokens to mint or burn and the signers to require.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pycardano import PlutusData


@dataclass(frozen=True)
class TxRef:
    """Origin transaction id plus output index."""
    tx_id: bytes
    index: int

    def __str__(self) -> str:
        return f"{self.tx_id.hex()}#{self.index}"


@dataclass(frozen=True)
class AssetUnit:
    """A (policy id, asset name) pair."""
    policy_id: bytes        # 28 bytes
    name: bytes

    def to_hex(self) -> str:
        return self.policy_id.hex() + self.name.hex()

    def __str__(self) -> str:
        return self.to_hex()


@dataclass(frozen=True)
class Account:
    """
    A ledger-resident UTxO.

    Fields:
        ref: Where the UTxO was created
        address: Bech32 address holding it
        coin: Lovelace held
        assets: Native asset quantities by unit
        datum: Inline datum CBOR, if any
        raw: Backend object the account was read from (assembler use only)
    """
    ref: TxRef
    address: str
    coin: int
    assets: Dict[AssetUnit, int] = field(default_factory=dict)
    datum: Optional[bytes] = None
    raw: Any = field(default=None, compare=False, repr=False)

    def quantity(self, unit: AssetUnit) -> int:
        return self.assets.get(unit, 0)

    def has_unit(self, unit: AssetUnit) -> bool:
        return self.quantity(unit) >= 1


# =============================================================================
# TRANSITION PLAN
# =============================================================================

@dataclass(frozen=True)
class Spend:
    """Consume `account` through the script registered under `role`."""
    account: Account
    redeemer: PlutusData
    role: str


@dataclass(frozen=True)
class Output:
    """
    An account to create. `coin=None` leaves the lovelace at the ledger
    minimum, which the assembler computes.
    """
    address: str
    coin: Optional[int]
    assets: Dict[AssetUnit, int] = field(default_factory=dict)
    datum: Optional[PlutusData] = None


@dataclass(frozen=True)
class MintAction:
    """Mint (positive) or burn (negative) `quantity` of `unit`."""
    unit: AssetUnit
    quantity: int
    redeemer: PlutusData
    role: str


@dataclass(frozen=True)
class TransitionPlan:
    """
    Everything one transition moves.

    Fields:
        action: Transition name (for logs and reports)
        spends: Script accounts consumed, each with its redeemer
        wallet_inputs: Plain owner accounts consumed (caller-selected)
        reference_inputs: Accounts read but not consumed
        outputs: Accounts created
        mints: Tokens minted or burned
        required_signers: Key hashes that must sign
    """
    action: str
    spends: Tuple[Spend, ...] = ()
    wallet_inputs: Tuple[Account, ...] = ()
    reference_inputs: Tuple[Account, ...] = ()
    outputs: Tuple[Output, ...] = ()
    mints: Tuple[MintAction, ...] = ()
    required_signers: FrozenSet[bytes] = frozenset()

    def consumed(self) -> List[Account]:
        return [s.account for s in self.spends] + list(self.wallet_inputs)

    def spent_coin(self) -> int:
        return sum(s.account.coin for s in self.spends)

    def output_coin(self) -> int:
        """Lovelace fixed by this plan's outputs (open-coin outputs count as 0)."""
        return sum(o.coin or 0 for o in self.outputs)

    def released_coin(self) -> int:
        """
        Script lovelace left unassigned. Positive goes back to the owner as
        change, negative is funded from the owner's wallet.
        """
        return self.spent_coin() - self.output_coin()


@dataclass(frozen=True)
class Confirmation:
    """Ledger verdict for a submitted request."""
    request_id: str
    confirmed: bool
    reason: str = ""
    stale_input: bool = False
