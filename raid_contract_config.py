"""
Raid Contract Configuration - constants and the static deployment config.

Constants here are fixed by the compiled scripts and never change at runtime.
Everything that differs per deployment (owner, network, blueprint location)
lives in RaidConfig, loaded once from a JSON file.

Example config file:

    {
        "network": "preview",
        "blueprint_path": "plutus.json",
        "owner_address": "addr_test1...",
        "owner_signing_key_path": "owner.skey",
        "infra_pkh": "<56 hex chars>"
    }
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from raid_errors import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# SCRIPT ROLES - one per compiled template in the blueprint
# =============================================================================

ROLE_REFERENCE_MINT = "reference_mint"
ROLE_REFERENCE_SPEND = "reference_spend"
ROLE_RAID_MINT = "raid_mint"
ROLE_RAID_SPEND = "raid_spend"

ROLES: Tuple[str, ...] = (
    ROLE_REFERENCE_MINT,
    ROLE_REFERENCE_SPEND,
    ROLE_RAID_MINT,
    ROLE_RAID_SPEND,
)

DEFAULT_ROLE_TITLES: Dict[str, str] = {
    ROLE_REFERENCE_MINT: "reference.mint",
    ROLE_REFERENCE_SPEND: "reference.spend",
    ROLE_RAID_MINT: "raid.mint",
    ROLE_RAID_SPEND: "raid.spend",
}


# =============================================================================
# TOKEN NAMES AND AMOUNTS
# =============================================================================

REFERENCE_TOKEN_NAME: bytes = b"Raiders"
RAID_TOKEN_NAME: bytes = b"B"

FIXED_OVERHEAD: int = 2_000_000         # lovelace locked on top of the bounty

NETWORKS = ("mainnet", "preprod", "preview")


# =============================================================================
# DEPLOYMENT CONFIG
# =============================================================================

@dataclass(frozen=True)
class RaidConfig:
    """
    Static deployment configuration.

    Fields:
        owner_address: Bech32 address of the pool owner (payment key credential)
        infra_pkh: Infrastructure key hash baked into the raid validator
        blueprint_path: CIP-57 blueprint holding the compiled templates
        network: mainnet, preprod or preview
        blockfrost_project_id: Chain provider credential
        owner_signing_key_path: Owner payment signing key (CLI only)
        reference_token_name / raid_token_name: Asset names
        fixed_overhead: Lovelace locked with every pool on top of the bounty
        allowed_locked_values: Overheads written into the reference datum
        role_titles: Blueprint title for each script role
        confirm_timeout / poll_interval: Confirmation wait bounds, seconds
        max_retries: Stale-input retries per action
    """
    owner_address: str
    infra_pkh: bytes
    blueprint_path: Path = Path("plutus.json")
    network: str = "preview"
    blockfrost_project_id: str = ""
    owner_signing_key_path: Optional[Path] = None
    reference_token_name: bytes = REFERENCE_TOKEN_NAME
    raid_token_name: bytes = RAID_TOKEN_NAME
    fixed_overhead: int = FIXED_OVERHEAD
    allowed_locked_values: Tuple[int, ...] = (FIXED_OVERHEAD,)
    role_titles: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ROLE_TITLES))
    confirm_timeout: float = 300.0
    poll_interval: float = 5.0
    max_retries: int = 0


def _hex_field(raw: dict, name: str, length: int) -> bytes:
    value = raw.get(name)
    if not isinstance(value, str):
        raise ConfigurationError(f"config field {name!r} must be a hex string")
    try:
        decoded = bytes.fromhex(value)
    except ValueError as e:
        raise ConfigurationError(f"config field {name!r} is not valid hex") from e
    if len(decoded) != length:
        raise ConfigurationError(f"config field {name!r} must be {length} bytes, got {len(decoded)}")
    return decoded


def _int_field(raw: dict, name: str, default: int, minimum: int = 0) -> int:
    value = raw.get(name, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ConfigurationError(f"config field {name!r} must be an integer >= {minimum}")
    return value


def config_from_dict(raw: dict, base_dir: Path = Path(".")) -> RaidConfig:
    """Validate a parsed config mapping. Relative paths resolve against `base_dir`."""
    owner_address = raw.get("owner_address")
    if not isinstance(owner_address, str) or not owner_address:
        raise ConfigurationError("config field 'owner_address' is required")

    network = raw.get("network", "preview")
    if network not in NETWORKS:
        raise ConfigurationError(f"unknown network {network!r}, expected one of {NETWORKS}")

    role_titles = dict(DEFAULT_ROLE_TITLES)
    for role, title in (raw.get("role_titles") or {}).items():
        if role not in ROLES:
            raise ConfigurationError(f"unknown script role {role!r}")
        role_titles[role] = title

    fixed_overhead = _int_field(raw, "fixed_overhead", FIXED_OVERHEAD)
    allowed = raw.get("allowed_locked_values", [fixed_overhead])
    if not isinstance(allowed, list) or not all(isinstance(v, int) and v >= 0 for v in allowed):
        raise ConfigurationError("config field 'allowed_locked_values' must be a list of integers >= 0")

    key_path = raw.get("owner_signing_key_path")
    return RaidConfig(
        owner_address=owner_address,
        infra_pkh=_hex_field(raw, "infra_pkh", 28),
        blueprint_path=base_dir / raw.get("blueprint_path", "plutus.json"),
        network=network,
        blockfrost_project_id=raw.get("blockfrost_project_id", ""),
        owner_signing_key_path=base_dir / key_path if key_path else None,
        reference_token_name=raw.get("reference_token_name", "Raiders").encode(),
        raid_token_name=raw.get("raid_token_name", "B").encode(),
        fixed_overhead=fixed_overhead,
        allowed_locked_values=tuple(allowed),
        role_titles=role_titles,
        confirm_timeout=float(raw.get("confirm_timeout", 300.0)),
        poll_interval=float(raw.get("poll_interval", 5.0)),
        max_retries=_int_field(raw, "max_retries", 0),
    )


def load_config(path) -> RaidConfig:
    """
    Load a RaidConfig from a JSON file.

    Environment overrides: RAID_BLOCKFROST_PROJECT_ID, RAID_NETWORK.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text())
    except OSError as e:
        raise ConfigurationError(f"cannot read config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"config {path} is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"config {path} must hold a JSON object")

    if os.environ.get("RAID_BLOCKFROST_PROJECT_ID"):
        raw["blockfrost_project_id"] = os.environ["RAID_BLOCKFROST_PROJECT_ID"]
    if os.environ.get("RAID_NETWORK"):
        raw["network"] = os.environ["RAID_NETWORK"]

    config = config_from_dict(raw, base_dir=path.parent)
    logger.debug("Loaded config from %s (network %s)", path, config.network)
    return config
