"""
Raid Script Parametrization - bind compiled templates to their parameters.

Templates come from a CIP-57 blueprint (plutus.json) and are looked up by
role, never by position. Each role has a frozen parameter dataclass whose
field order IS the template's parameter order; when the blueprint declares
its parameters, names and count are checked before anything is applied.

Swapping two 28-byte parameters would still compile into a valid script,
just a different one with a different hash. The checks below exist so that
this can only fail loudly.
"""
import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Tuple, Type, Union

import cbor2
import pycardano as pc
import uplc.ast
from uplc.tools import flatten, unflatten

from raid_contract_config import (
    ROLE_RAID_MINT,
    ROLE_RAID_SPEND,
    ROLE_REFERENCE_MINT,
    ROLE_REFERENCE_SPEND,
)
from raid_errors import ConfigurationError

logger = logging.getLogger(__name__)

HASH_LENGTH = 28

SCRIPT_TYPES = {
    "v1": pc.PlutusV1Script,
    "v2": pc.PlutusV2Script,
    "v3": pc.PlutusV3Script,
}


# =============================================================================
# PARAMETER STRUCTURES (field order = template parameter order)
# =============================================================================

def _check_hashes(params) -> None:
    for f in fields(params):
        value = getattr(params, f.name)
        if not isinstance(value, bytes) or len(value) != HASH_LENGTH:
            raise ConfigurationError(
                f"{type(params).__name__}.{f.name} must be {HASH_LENGTH} bytes"
            )


@dataclass(frozen=True)
class ReferenceMintParams:
    """Reference token minting policy."""
    owner_pkh: bytes

    def __post_init__(self):
        _check_hashes(self)


@dataclass(frozen=True)
class ReferenceSpendParams:
    """Reference validator (holds the reference token and its datum)."""
    owner_pkh: bytes
    reference_policy_id: bytes

    def __post_init__(self):
        _check_hashes(self)


@dataclass(frozen=True)
class RaidMintParams:
    """Raid token minting policy."""
    owner_pkh: bytes
    reference_policy_id: bytes

    def __post_init__(self):
        _check_hashes(self)


@dataclass(frozen=True)
class RaidSpendParams:
    """Raid validator (holds the pool account)."""
    infra_pkh: bytes
    owner_pkh: bytes
    raid_policy_id: bytes

    def __post_init__(self):
        _check_hashes(self)


ScriptParams = Union[ReferenceMintParams, ReferenceSpendParams, RaidMintParams, RaidSpendParams]

PARAMS_BY_ROLE: Dict[str, Type] = {
    ROLE_REFERENCE_MINT: ReferenceMintParams,
    ROLE_REFERENCE_SPEND: ReferenceSpendParams,
    ROLE_RAID_MINT: RaidMintParams,
    ROLE_RAID_SPEND: RaidSpendParams,
}


# =============================================================================
# TEMPLATES AND INSTANCES
# =============================================================================

@dataclass(frozen=True)
class ScriptTemplate:
    """
    One compiled, unparametrized validator from the blueprint.

    Fields:
        title: Blueprint title
        code: Flat-encoded UPLC program in one CBOR byte-string layer
        plutus_version: "v1", "v2" or "v3"
        parameter_titles: Declared parameter names, empty if not declared
    """
    title: str
    code: bytes
    plutus_version: str = "v2"
    parameter_titles: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScriptInstance:
    """A parametrized script and its hash (the policy id for minting scripts)."""
    role: str
    script: bytes               # pycardano Plutus script (single CBOR wrap)
    script_hash: bytes          # 28 bytes

    @property
    def policy_id(self) -> bytes:
        return self.script_hash


def normalize_compiled_code(compiled_hex: str) -> bytes:
    """
    Blueprint compiled code as a single CBOR byte-string wrapping of the flat
    program. Double-wrapped input loses its outer layer.
    """
    try:
        raw = bytes.fromhex(compiled_hex)
        inner = cbor2.loads(raw)
    except (ValueError, cbor2.CBORDecodeError) as e:
        raise ConfigurationError(f"compiled code is not CBOR-wrapped: {e}") from e
    if not isinstance(inner, bytes):
        raise ConfigurationError("compiled code must be a CBOR byte string")
    try:
        twice = cbor2.loads(inner)
    except (ValueError, cbor2.CBORDecodeError):
        return raw
    return inner if isinstance(twice, bytes) else raw


class Blueprint:
    """
    Named access to the templates of a CIP-57 blueprint.

    Usage:
        blueprint = Blueprint.load("plutus.json")
        template = blueprint.for_role("raid_spend", config.role_titles)
    """

    def __init__(self, templates: Dict[str, ScriptTemplate]):
        self.templates = templates

    @classmethod
    def from_dict(cls, raw: dict) -> "Blueprint":
        version = (raw.get("preamble") or {}).get("plutusVersion", "v2")
        if version not in SCRIPT_TYPES:
            raise ConfigurationError(f"unsupported plutus version {version!r}")
        templates: Dict[str, ScriptTemplate] = {}
        for entry in raw.get("validators") or []:
            title = entry.get("title")
            code = entry.get("compiledCode")
            if not title or not code:
                raise ConfigurationError(f"blueprint validator entry missing title or code: {entry!r}")
            if title in templates:
                raise ConfigurationError(f"duplicate blueprint title {title!r}")
            params = tuple(p.get("title", "") for p in entry.get("parameters") or [])
            templates[title] = ScriptTemplate(
                title=title,
                code=normalize_compiled_code(code),
                plutus_version=version,
                parameter_titles=params,
            )
        if not templates:
            raise ConfigurationError("blueprint has no validators")
        return cls(templates)

    @classmethod
    def load(cls, path) -> "Blueprint":
        path = Path(path)
        try:
            raw = json.loads(path.read_text())
        except OSError as e:
            raise ConfigurationError(f"cannot read blueprint {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"blueprint {path} is not valid JSON: {e}") from e
        blueprint = cls.from_dict(raw)
        logger.debug("Loaded %d templates from %s", len(blueprint.templates), path)
        return blueprint

    def template(self, title: str) -> ScriptTemplate:
        if title not in self.templates:
            raise ConfigurationError(
                f"blueprint has no validator titled {title!r} (have: {sorted(self.templates)})"
            )
        return self.templates[title]

    def for_role(self, role: str, role_titles: Dict[str, str]) -> ScriptTemplate:
        if role not in role_titles:
            raise ConfigurationError(f"no blueprint title configured for role {role!r}")
        return self.template(role_titles[role])


# =============================================================================
# INSTANTIATION
# =============================================================================

def _normalize(name: str) -> str:
    return name.replace("_", "").replace("-", "").lower()


def check_parameter_order(template: ScriptTemplate, params: ScriptParams) -> None:
    """Fail unless `params` lines up with the template's declared parameters."""
    names = [f.name for f in fields(params)]
    declared = template.parameter_titles
    if not declared:
        return
    if len(declared) != len(names):
        raise ConfigurationError(
            f"{template.title} declares {len(declared)} parameters, "
            f"{type(params).__name__} supplies {len(names)}"
        )
    for position, (expected, given) in enumerate(zip(declared, names)):
        if _normalize(expected) != _normalize(given):
            raise ConfigurationError(
                f"{template.title} parameter {position} is {expected!r}, "
                f"{type(params).__name__} puts {given!r} there"
            )


def instantiate(template: ScriptTemplate, params: ScriptParams, role: str = "") -> ScriptInstance:
    """
    Apply `params` to `template` in declared order.

    Deterministic: the same template and parameters always give the same
    script bytes and hash.
    """
    if role and not isinstance(params, PARAMS_BY_ROLE[role]):
        raise ConfigurationError(
            f"role {role!r} takes {PARAMS_BY_ROLE[role].__name__}, got {type(params).__name__}"
        )
    check_parameter_order(template, params)

    try:
        program = unflatten(template.code)
    except Exception as e:
        raise ConfigurationError(f"{template.title} is not a valid UPLC program: {e}") from e

    term = program.term
    for f in fields(params):
        value = getattr(params, f.name)
        term = uplc.ast.Apply(term, uplc.ast.data_from_cbor(cbor2.dumps(value)))
    applied = uplc.ast.Program(program.version, term)

    script = SCRIPT_TYPES[template.plutus_version](flatten(applied))
    script_hash = pc.plutus_script_hash(script).payload
    logger.debug("Instantiated %s as %s", template.title, script_hash.hex())
    return ScriptInstance(role=role or template.title, script=script, script_hash=script_hash)
