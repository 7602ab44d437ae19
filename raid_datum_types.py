"""
Raid Datum Types - Shared on-chain record shapes for the raid pool scripts.

This file contains the canonical datum and redeemer definitions read by the
reference validator, the raid validator and both minting policies.
Every off-chain module builds records through these classes.

CRITICAL: Field order and CONSTR_ID must match the compiled validators
bit-for-bit. A wrong order or index makes the ledger reject the whole request.
"""

from opshin.prelude import *


# =============================================================================
# REFERENCE POOL DATUM (held with the reference token at the reference validator)
# =============================================================================

@dataclass
class ReferencePoolDatum(PlutusData):
    """
    Governance record - stored in the reference UTxO with the reference token.

    The raid validator hashes listed here are the spending scripts currently
    allowed to hold pool tokens. Replacing this record upgrades the pool
    scripts without re-minting the raid token.

    Fields:
        authorized_spending_hashes: Raid validator hashes (28 bytes each)
        allowed_locked_values: Accepted fixed lovelace overheads
    """
    CONSTR_ID = 0
    authorized_spending_hashes: List[bytes]     # 28 bytes each
    allowed_locked_values: List[int]            # lovelace


# =============================================================================
# RAID POOL DATUM (held with the raid token at the raid validator)
# =============================================================================

@dataclass
class RaidPoolDatum(PlutusData):
    """
    Pool state - stored in the pool UTxO with the raid token.

    Invariant: locked lovelace >= remaining_actions * reward_per_action.

    Fields:
        remaining_actions: Claims left before the pool is exhausted
        reward_per_action: Lovelace paid out by each claim
        owner_pkh: Pool owner's payment key hash (28 bytes)
    """
    CONSTR_ID = 0
    remaining_actions: int
    reward_per_action: int
    owner_pkh: bytes                # 28 bytes


# =============================================================================
# MINTING REDEEMERS (the burn redeemer is shared by both policies)
# =============================================================================

@dataclass
class ReferenceAction(PlutusData):
    """
    Mint the reference token, or replace its datum when spending it.
    Carries the full contents of the reference record to be written.
    """
    CONSTR_ID = 0
    authorized_spending_hashes: List[bytes]
    allowed_locked_values: List[int]


@dataclass
class RaidMint(PlutusData):
    """Mint a raid token for a new pool."""
    CONSTR_ID = 0
    initial_actions: int
    reward_per_action: int


@dataclass
class BurnToken(PlutusData):
    """Burn a token (raid or reference policy)."""
    CONSTR_ID = 1


# =============================================================================
# RAID VALIDATOR REDEEMERS
# =============================================================================

@dataclass
class Claim(PlutusData):
    """Pay one reward and re-lock the remainder."""
    CONSTR_ID = 0


@dataclass
class UpdateRemaining(PlutusData):
    """Replace the remaining action count without moving funds."""
    CONSTR_ID = 1
    remaining_actions: int


@dataclass
class Close(PlutusData):
    """Spend the pool UTxO for good (raid token burned alongside)."""
    CONSTR_ID = 2


RaidRedeemer = Union[Claim, UpdateRemaining, Close]
MintRedeemer = Union[RaidMint, ReferenceAction, BurnToken]
