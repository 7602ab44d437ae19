"""
Raid Identity Catalog - every derived identity a transition needs.

Pure derivation from static configuration: owner key hash, parametrized
scripts, their hashes, policy ids, script addresses and asset units.
Computed once and shared read-only. Changing any input (a different owner
key, a new template) gives a different catalog; never patch one in place.

Derivation order follows the parameter dependencies:

    reference_mint(owner)                       -> reference policy id
    reference_spend(owner, reference policy)    -> reference address
    raid_mint(owner, reference policy)          -> raid policy id
    raid_spend(infra, owner, raid policy)       -> pool address
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping

import pycardano as pc

from raid_contract_config import (
    DEFAULT_ROLE_TITLES,
    RAID_TOKEN_NAME,
    REFERENCE_TOKEN_NAME,
    ROLE_RAID_MINT,
    ROLE_RAID_SPEND,
    ROLE_REFERENCE_MINT,
    ROLE_REFERENCE_SPEND,
    RaidConfig,
)
from raid_errors import ConfigurationError
from raid_ledger_types import AssetUnit
from raid_script_params import (
    Blueprint,
    RaidMintParams,
    RaidSpendParams,
    ReferenceMintParams,
    ReferenceSpendParams,
    ScriptInstance,
    instantiate,
)


def network_of(name: str) -> pc.Network:
    return pc.Network.MAINNET if name == "mainnet" else pc.Network.TESTNET


def owner_pkh_from_address(address: str) -> bytes:
    """Payment key hash of a bech32 address. Script addresses are rejected."""
    try:
        parsed = pc.Address.from_primitive(address)
    except (pc.DecodingException, pc.InvalidAddressInputException, ValueError, TypeError) as e:
        raise ConfigurationError(f"invalid owner address {address!r}: {e}") from e
    if not isinstance(parsed.payment_part, pc.VerificationKeyHash):
        raise ConfigurationError(f"owner address {address!r} must have a payment key credential")
    return parsed.payment_part.payload


def script_address(script_hash: bytes, network: str) -> str:
    return str(pc.Address(payment_part=pc.ScriptHash(script_hash), network=network_of(network)))


@dataclass(frozen=True)
class IdentityCatalog:
    """
    Derived identities, immutable after derivation.

    Fields:
        network: Network name the addresses are encoded for
        owner_address / owner_pkh: Pool owner (the only authorized signer)
        scripts: Parametrized script per role
        reference_address / pool_address: Script addresses holding the tokens
        reference_unit / raid_unit: The two singleton asset units
    """
    network: str
    owner_address: str
    owner_pkh: bytes
    scripts: Mapping[str, ScriptInstance]
    reference_address: str
    pool_address: str
    reference_unit: AssetUnit
    raid_unit: AssetUnit

    def __post_init__(self):
        object.__setattr__(self, "scripts", MappingProxyType(dict(self.scripts)))

    def script(self, role: str) -> ScriptInstance:
        if role not in self.scripts:
            raise ConfigurationError(f"no script instantiated for role {role!r}")
        return self.scripts[role]

    @property
    def reference_policy_id(self) -> bytes:
        return self.scripts[ROLE_REFERENCE_MINT].policy_id

    @property
    def raid_policy_id(self) -> bytes:
        return self.scripts[ROLE_RAID_MINT].policy_id

    @property
    def reference_validator_hash(self) -> bytes:
        return self.scripts[ROLE_REFERENCE_SPEND].script_hash

    @property
    def raid_validator_hash(self) -> bytes:
        return self.scripts[ROLE_RAID_SPEND].script_hash


def derive_catalog(
    blueprint: Blueprint,
    owner_address: str,
    infra_pkh: bytes,
    network: str = "preview",
    role_titles: Dict[str, str] = DEFAULT_ROLE_TITLES,
    reference_token_name: bytes = REFERENCE_TOKEN_NAME,
    raid_token_name: bytes = RAID_TOKEN_NAME,
) -> IdentityCatalog:
    """Instantiate all four scripts and derive every identity from them."""
    owner_pkh = owner_pkh_from_address(owner_address)

    def build(role, params) -> ScriptInstance:
        return instantiate(blueprint.for_role(role, role_titles), params, role)

    reference_mint = build(ROLE_REFERENCE_MINT, ReferenceMintParams(owner_pkh=owner_pkh))
    reference_spend = build(ROLE_REFERENCE_SPEND, ReferenceSpendParams(
        owner_pkh=owner_pkh,
        reference_policy_id=reference_mint.policy_id,
    ))
    raid_mint = build(ROLE_RAID_MINT, RaidMintParams(
        owner_pkh=owner_pkh,
        reference_policy_id=reference_mint.policy_id,
    ))
    raid_spend = build(ROLE_RAID_SPEND, RaidSpendParams(
        infra_pkh=infra_pkh,
        owner_pkh=owner_pkh,
        raid_policy_id=raid_mint.policy_id,
    ))

    return IdentityCatalog(
        network=network,
        owner_address=owner_address,
        owner_pkh=owner_pkh,
        scripts={
            ROLE_REFERENCE_MINT: reference_mint,
            ROLE_REFERENCE_SPEND: reference_spend,
            ROLE_RAID_MINT: raid_mint,
            ROLE_RAID_SPEND: raid_spend,
        },
        reference_address=script_address(reference_spend.script_hash, network),
        pool_address=script_address(raid_spend.script_hash, network),
        reference_unit=AssetUnit(reference_mint.policy_id, reference_token_name),
        raid_unit=AssetUnit(raid_mint.policy_id, raid_token_name),
    )


def catalog_from_config(config: RaidConfig, blueprint: Blueprint = None) -> IdentityCatalog:
    """Derive the catalog for a deployment config (loads the blueprint if not given)."""
    if blueprint is None:
        blueprint = Blueprint.load(config.blueprint_path)
    return derive_catalog(
        blueprint,
        owner_address=config.owner_address,
        infra_pkh=config.infra_pkh,
        network=config.network,
        role_titles=config.role_titles,
        reference_token_name=config.reference_token_name,
        raid_token_name=config.raid_token_name,
    )
