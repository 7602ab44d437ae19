"""
conftest.py - Shared pytest fixtures for the raid pool tests

Provides:
- A blueprint built from small UPLC programs (one per script role)
- A derived identity catalog for a test owner
- An in-memory ledger and pass-through assembler wired to a PoolClient
- Account and datum builders
"""

import cbor2
import pycardano as pc
import pytest
from uplc.tools import flatten, parse

from raid_contract_config import DEFAULT_ROLE_TITLES, ROLES
from raid_datum_codec import encode_record
from raid_datum_types import RaidPoolDatum, ReferencePoolDatum
from raid_identity import derive_catalog
from raid_ledger_types import Account, TxRef
from raid_pool_client import PoolClient
from raid_script_params import Blueprint

from tests.fake_ledger import FakeLedger, PassThroughAssembler


OWNER_PKH = bytes(range(28))
OTHER_PKH = bytes(range(100, 128))
INFRA_PKH = b"\x11" * 28


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def key_address(pkh: bytes) -> str:
    return str(pc.Address(payment_part=pc.VerificationKeyHash(pkh), network=pc.Network.TESTNET))


def compiled_code(source: str, double_wrap: bool = False) -> str:
    """Blueprint-style compiled code for a UPLC program."""
    wrapped = flatten(parse(source))
    if double_wrap:
        wrapped = cbor2.dumps(wrapped)
    return wrapped.hex()


def blueprint_dict(declare_parameters: bool = False) -> dict:
    """Blueprint with a distinct program per role."""
    parameter_names = {
        "reference_mint": ["owner_pkh"],
        "reference_spend": ["owner_pkh", "reference_policy_id"],
        "raid_mint": ["owner_pkh", "reference_policy_id"],
        "raid_spend": ["infra_pkh", "owner_pkh", "raid_policy_id"],
    }
    validators = []
    for number, role in enumerate(ROLES):
        names = parameter_names[role]
        body = f"(con integer {number})"
        for i in range(len(names) + 2):
            body = f"(lam v{i} {body})"
        entry = {
            "title": DEFAULT_ROLE_TITLES[role],
            "compiledCode": compiled_code(f"(program 1.0.0 {body})"),
        }
        if declare_parameters:
            entry["parameters"] = [{"title": n, "schema": {"dataType": "bytes"}} for n in names]
        validators.append(entry)
    return {"preamble": {"title": "raid/pool", "plutusVersion": "v2"}, "validators": validators}


def make_account(address: str, coin: int, assets=None, datum=None, tx_byte: int = 1, index: int = 0) -> Account:
    return Account(
        ref=TxRef(bytes([tx_byte]) * 32, index),
        address=address,
        coin=coin,
        assets=dict(assets or {}),
        datum=encode_record(datum) if datum is not None else None,
    )


def pool_account(catalog, remaining: int, reward: int, locked: int, owner: bytes = OWNER_PKH, **kwargs) -> Account:
    datum = RaidPoolDatum(remaining_actions=remaining, reward_per_action=reward, owner_pkh=owner)
    return make_account(catalog.pool_address, locked, {catalog.raid_unit: 1}, datum, **kwargs)


def reference_account(catalog, hashes=None, values=(2_000_000,), **kwargs) -> Account:
    datum = ReferencePoolDatum(
        authorized_spending_hashes=list(hashes if hashes is not None else [catalog.raid_validator_hash]),
        allowed_locked_values=list(values),
    )
    return make_account(catalog.reference_address, 1_500_000, {catalog.reference_unit: 1}, datum, **kwargs)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def owner_address():
    return key_address(OWNER_PKH)


@pytest.fixture
def blueprint():
    return Blueprint.from_dict(blueprint_dict())


@pytest.fixture
def catalog(blueprint, owner_address):
    return derive_catalog(blueprint, owner_address, INFRA_PKH)


@pytest.fixture
def ledger(catalog):
    fake = FakeLedger(signatures={OWNER_PKH})
    fake.fund(catalog.owner_address, 50_000_000)
    fake.fund(catalog.owner_address, 150_000_000)
    return fake


@pytest.fixture
def client(catalog, ledger):
    return PoolClient(catalog, ledger, PassThroughAssembler())


@pytest.fixture
def open_pool(client):
    """Client whose pool is minted with 10 claims of 1 ADA."""
    client.mint_reference()
    client.mint_pool(initial_actions=10, reward_per_action=1_000_000)
    return client
