"""
Raid State Machine - successor states and value movements per transition.

Pure functions: given the current accounts, return the TransitionPlan that
moves the pool to its unique valid successor. No ledger access happens here.

Pool lifecycle:

    UNINITIALIZED --mint_raid--> OPEN(n) --claim--> OPEN(n-1) ... OPEN(1)
                                                        |
                                                      claim
                                                        v
                                     CLOSED <--close-- EXHAUSTED(0)

update() rewrites n while OPEN. close() is allowed from OPEN too, but the
raid validator may refuse it until n == 0; that check stays on-chain.

Operations:
- mint_reference: Mint the reference token with its governance datum
- mint_raid: Mint the raid token and lock the bounty
- claim: Pay one reward, re-lock the rest with n - 1
- update: Replace n without moving funds
- close: Spend the pool and burn the raid token
- update_reference: Replace the governance datum
"""
import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from raid_contract_config import (
    FIXED_OVERHEAD,
    ROLE_RAID_MINT,
    ROLE_RAID_SPEND,
    ROLE_REFERENCE_MINT,
    ROLE_REFERENCE_SPEND,
)
from raid_datum_codec import decode_record
from raid_datum_types import (
    BurnToken,
    Claim,
    Close,
    RaidMint,
    RaidPoolDatum,
    ReferenceAction,
    ReferencePoolDatum,
    UpdateRemaining,
)
from raid_errors import AccountLookupError, DatumFormatError, InsufficientLockError, InvariantViolation
from raid_identity import IdentityCatalog
from raid_ledger_types import Account, AssetUnit, MintAction, Output, Spend, TransitionPlan

logger = logging.getLogger(__name__)

PKH_LENGTH = 28


class PoolState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


# =============================================================================
# HELPERS
# =============================================================================

def select_singleton(accounts: Sequence[Account], address: str, unit: Optional[AssetUnit]) -> Account:
    """
    Exactly one account must hold `unit`. Several matches mean the ledger is
    not in the state this client believes; never pick one of them.
    """
    matches = [a for a in accounts if unit is None or a.has_unit(unit)]
    if len(matches) != 1:
        raise AccountLookupError(address, unit.to_hex() if unit else None, len(matches))
    return matches[0]


def check_unminted(accounts: Sequence[Account], unit: AssetUnit, label: str) -> None:
    """
    Minting is only allowed while no account holds `unit`. A second mint
    would leave two accounts with the same singleton token.
    """
    holders = [a for a in accounts if a.has_unit(unit)]
    if not holders:
        return
    refs = ", ".join(str(a.ref) for a in holders)
    if label == "pool" and len(holders) == 1:
        state = pool_state(holders[0]).value
        raise InvariantViolation(f"pool is already {state} at {refs}; mint needs an uninitialized pool")
    raise InvariantViolation(f"{label} token {unit} already minted at {refs}")


def unique(values: Iterable) -> list:
    """De-duplicate preserving first occurrence (on-chain sets are lists)."""
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen


def read_pool_datum(account: Account) -> RaidPoolDatum:
    if account.datum is None:
        raise DatumFormatError(f"pool account {account.ref} has no inline datum")
    return decode_record(RaidPoolDatum, account.datum)


def read_reference_datum(account: Account) -> ReferencePoolDatum:
    if account.datum is None:
        raise DatumFormatError(f"reference account {account.ref} has no inline datum")
    return decode_record(ReferencePoolDatum, account.datum)


def pool_state(account: Optional[Account], burned: bool = False) -> PoolState:
    """
    State of a pool from its current account (None when there is none).
    The ledger cannot tell a never-minted pool from a burned one; callers
    that know the token was burned pass `burned`.
    """
    if account is None:
        return PoolState.CLOSED if burned else PoolState.UNINITIALIZED
    datum = read_pool_datum(account)
    return PoolState.OPEN if datum.remaining_actions > 0 else PoolState.EXHAUSTED


def check_pool_account(catalog: IdentityCatalog, account: Account) -> RaidPoolDatum:
    """
    Sanity checks on a pool account before consuming it.
    Returns its decoded datum.
    """
    if account.quantity(catalog.raid_unit) != 1:
        raise InvariantViolation(
            f"pool account {account.ref} holds {account.quantity(catalog.raid_unit)} "
            f"of {catalog.raid_unit}, expected 1"
        )
    datum = read_pool_datum(account)
    if len(datum.owner_pkh) != PKH_LENGTH:
        raise InvariantViolation(f"pool account {account.ref} owner hash is {len(datum.owner_pkh)} bytes")
    if datum.owner_pkh != catalog.owner_pkh:
        raise InvariantViolation(
            f"pool account {account.ref} belongs to {datum.owner_pkh.hex()}, "
            f"not {catalog.owner_pkh.hex()}"
        )
    if datum.reward_per_action <= 0:
        raise InvariantViolation(f"pool account {account.ref} has reward {datum.reward_per_action}")
    if datum.remaining_actions < 0:
        raise InvariantViolation(f"pool account {account.ref} has {datum.remaining_actions} actions")
    return datum


def signers(catalog: IdentityCatalog) -> frozenset:
    return frozenset({catalog.owner_pkh})


# =============================================================================
# CLAIM ARITHMETIC
# =============================================================================

@dataclass(frozen=True)
class ClaimOutcome:
    """Value split of one claim: locked == reward + out_value."""
    reward: int
    out_value: int
    successor: RaidPoolDatum


def compute_claim(datum: RaidPoolDatum, locked: int) -> ClaimOutcome:
    reward = datum.reward_per_action
    out_value = locked - reward
    remaining = datum.remaining_actions - 1
    if out_value < 0 or remaining < 0:
        raise InsufficientLockError(locked, reward, datum.remaining_actions)
    successor = RaidPoolDatum(
        remaining_actions=remaining,
        reward_per_action=reward,
        owner_pkh=datum.owner_pkh,
    )
    return ClaimOutcome(reward=reward, out_value=out_value, successor=successor)


# =============================================================================
# TRANSITIONS
# =============================================================================

def mint_reference(
    catalog: IdentityCatalog,
    wallet_accounts: Sequence[Account],
    allowed_locked_values: Sequence[int] = (FIXED_OVERHEAD,),
    authorized_spending_hashes: Optional[Sequence[bytes]] = None,
) -> TransitionPlan:
    """
    Mint the reference token and park it at the reference validator with a
    datum authorizing the current raid validator.
    """
    if not wallet_accounts:
        raise AccountLookupError(catalog.owner_address, None, 0)
    hashes = unique(authorized_spending_hashes or [catalog.raid_validator_hash])
    values = unique(allowed_locked_values)
    datum = ReferencePoolDatum(authorized_spending_hashes=hashes, allowed_locked_values=values)
    unit = catalog.reference_unit
    logger.debug("mint_reference: %s with %d authorized hashes", unit, len(hashes))
    return TransitionPlan(
        action="mint_reference",
        wallet_inputs=tuple(wallet_accounts),
        outputs=(Output(catalog.reference_address, None, {unit: 1}, datum),),
        mints=(MintAction(
            unit, 1,
            ReferenceAction(authorized_spending_hashes=hashes, allowed_locked_values=values),
            ROLE_REFERENCE_MINT,
        ),),
        required_signers=signers(catalog),
    )


def mint_raid(
    catalog: IdentityCatalog,
    reference_account: Account,
    initial_actions: int,
    reward_per_action: int,
    fixed_overhead: int = FIXED_OVERHEAD,
) -> TransitionPlan:
    """
    Mint the raid token and lock initial_actions * reward_per_action plus
    the fixed overhead at the pool address. The reference account is only
    read.
    """
    if initial_actions <= 0:
        raise InvariantViolation(f"initial actions must be > 0, got {initial_actions}")
    if reward_per_action <= 0:
        raise InvariantViolation(f"reward per action must be > 0, got {reward_per_action}")
    if fixed_overhead < 0:
        raise InvariantViolation(f"fixed overhead must be >= 0, got {fixed_overhead}")
    if not reference_account.has_unit(catalog.reference_unit):
        raise InvariantViolation(f"account {reference_account.ref} does not hold {catalog.reference_unit}")

    governance = read_reference_datum(reference_account)
    if catalog.raid_validator_hash not in governance.authorized_spending_hashes:
        raise InvariantViolation(
            f"raid validator {catalog.raid_validator_hash.hex()} is not authorized by the reference datum"
        )
    if governance.allowed_locked_values and fixed_overhead not in governance.allowed_locked_values:
        raise InvariantViolation(
            f"overhead {fixed_overhead} not in allowed values {governance.allowed_locked_values}"
        )

    locked = initial_actions * reward_per_action + fixed_overhead
    datum = RaidPoolDatum(
        remaining_actions=initial_actions,
        reward_per_action=reward_per_action,
        owner_pkh=catalog.owner_pkh,
    )
    unit = catalog.raid_unit
    logger.debug("mint_raid: %d x %d locking %d", initial_actions, reward_per_action, locked)
    return TransitionPlan(
        action="mint_raid",
        reference_inputs=(reference_account,),
        outputs=(Output(catalog.pool_address, locked, {unit: 1}, datum),),
        mints=(MintAction(
            unit, 1,
            RaidMint(initial_actions=initial_actions, reward_per_action=reward_per_action),
            ROLE_RAID_MINT,
        ),),
        required_signers=signers(catalog),
    )


def claim(catalog: IdentityCatalog, pool_account: Account) -> TransitionPlan:
    """
    Pay reward_per_action to the owner and re-lock the rest with one action
    fewer. Fails with InsufficientLockError instead of going negative.
    """
    datum = check_pool_account(catalog, pool_account)
    outcome = compute_claim(datum, pool_account.coin)
    unit = catalog.raid_unit
    logger.debug(
        "claim: %s pays %d, re-locks %d with %d remaining",
        pool_account.ref, outcome.reward, outcome.out_value, outcome.successor.remaining_actions,
    )
    return TransitionPlan(
        action="claim",
        spends=(Spend(pool_account, Claim(), ROLE_RAID_SPEND),),
        outputs=(
            Output(catalog.owner_address, outcome.reward),
            Output(catalog.pool_address, outcome.out_value, {unit: 1}, outcome.successor),
        ),
        required_signers=signers(catalog),
    )


def update(catalog: IdentityCatalog, pool_account: Account, new_remaining: int) -> TransitionPlan:
    """Rewrite the remaining action count of an open pool; value unchanged."""
    datum = check_pool_account(catalog, pool_account)
    if datum.remaining_actions <= 0:
        raise InvariantViolation(f"pool {pool_account.ref} is exhausted; update needs an open pool")
    if new_remaining < 0:
        raise InvariantViolation(f"remaining actions must be >= 0, got {new_remaining}")
    if new_remaining * datum.reward_per_action > pool_account.coin:
        raise InsufficientLockError(pool_account.coin, datum.reward_per_action, new_remaining)

    successor = RaidPoolDatum(
        remaining_actions=new_remaining,
        reward_per_action=datum.reward_per_action,
        owner_pkh=datum.owner_pkh,
    )
    logger.debug("update: %s %d -> %d", pool_account.ref, datum.remaining_actions, new_remaining)
    return TransitionPlan(
        action="update",
        spends=(Spend(pool_account, UpdateRemaining(remaining_actions=new_remaining), ROLE_RAID_SPEND),),
        outputs=(Output(catalog.pool_address, pool_account.coin, dict(pool_account.assets), successor),),
        required_signers=signers(catalog),
    )


def close(catalog: IdentityCatalog, pool_account: Account) -> TransitionPlan:
    """
    Spend the pool account and burn its raid token. Leftover lovelace is
    released to the owner as change. No successor account is created.
    """
    datum = check_pool_account(catalog, pool_account)
    if datum.remaining_actions > 0:
        logger.warning(
            "Closing pool %s with %d actions remaining; the validator may reject it",
            pool_account.ref, datum.remaining_actions,
        )
    return TransitionPlan(
        action="close",
        spends=(Spend(pool_account, Close(), ROLE_RAID_SPEND),),
        mints=(MintAction(catalog.raid_unit, -1, BurnToken(), ROLE_RAID_MINT),),
        required_signers=signers(catalog),
    )


def update_reference(
    catalog: IdentityCatalog,
    reference_account: Account,
    authorized_spending_hashes: Optional[Sequence[bytes]] = None,
    allowed_locked_values: Optional[Sequence[int]] = None,
) -> TransitionPlan:
    """
    Replace the governance datum. Omitted lists keep their current contents.
    The reference token and its lovelace move to the successor unchanged.
    """
    if reference_account.quantity(catalog.reference_unit) != 1:
        raise InvariantViolation(f"account {reference_account.ref} does not hold {catalog.reference_unit}")
    current = read_reference_datum(reference_account)
    hashes: List[bytes] = unique(
        current.authorized_spending_hashes if authorized_spending_hashes is None
        else authorized_spending_hashes
    )
    values: List[int] = unique(
        current.allowed_locked_values if allowed_locked_values is None else allowed_locked_values
    )
    for h in hashes:
        if len(h) != PKH_LENGTH:
            raise InvariantViolation(f"authorized hash {h.hex()} is not {PKH_LENGTH} bytes")
    if any(v < 0 for v in values):
        raise InvariantViolation(f"allowed locked values must be >= 0, got {values}")

    datum = ReferencePoolDatum(authorized_spending_hashes=hashes, allowed_locked_values=values)
    logger.debug("update_reference: %s now authorizes %d hashes", reference_account.ref, len(hashes))
    return TransitionPlan(
        action="update_reference",
        spends=(Spend(
            reference_account,
            ReferenceAction(authorized_spending_hashes=hashes, allowed_locked_values=values),
            ROLE_REFERENCE_SPEND,
        ),),
        outputs=(Output(catalog.reference_address, reference_account.coin, dict(reference_account.assets), datum),),
        required_signers=signers(catalog),
    )
