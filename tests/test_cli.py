"""
CLI Tests
"""

import json

import pytest

import raid_cli
from raid_cli import build_parser, main, show

from tests.conftest import INFRA_PKH, OWNER_PKH, blueprint_dict, key_address


def test_parser_mint_pool():
    args = build_parser().parse_args(["--config", "x.json", "mint-pool", "--actions", "10", "--reward", "1000000"])
    assert (args.command, args.actions, args.reward) == ("mint-pool", 10, 1_000_000)


def test_parser_update_reference():
    args = build_parser().parse_args(
        ["update-reference", "--hash", "ab" * 28, "--hash", "cd" * 28, "--locked-value", "2000000"]
    )
    assert args.hashes == [b"\xab" * 28, b"\xcd" * 28]
    assert args.values == [2_000_000]


def test_parser_rejects_bad_hash():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["update-reference", "--hash", "zz"])


def test_missing_config_exits_with_error(tmp_path, caplog):
    assert main(["--config", str(tmp_path / "absent.json"), "show"]) == 1
    assert "ConfigurationError" in caplog.text


def test_show(open_pool, capsys):
    show(open_pool)
    out = capsys.readouterr().out
    assert open_pool.catalog.pool_address in out
    assert "Pool state:         open" in out


# =============================================================================
# COMMANDS WITHOUT A SIGNING KEY
# =============================================================================

class EmptyChain:
    """Chain context with no UTxOs anywhere."""

    def utxos(self, address):
        return []


@pytest.fixture
def keyless_config(tmp_path, monkeypatch):
    (tmp_path / "plutus.json").write_text(json.dumps(blueprint_dict()))
    path = tmp_path / "raid.json"
    path.write_text(json.dumps({
        "owner_address": key_address(OWNER_PKH),
        "infra_pkh": INFRA_PKH.hex(),
        "blockfrost_project_id": "preview-test",
    }))
    monkeypatch.setattr(raid_cli, "blockfrost_context", lambda config: EmptyChain())
    return path


def test_show_needs_no_signing_key(keyless_config, capsys):
    assert main(["--config", str(keyless_config), "show"]) == 0
    assert "Pool state:         uninitialized" in capsys.readouterr().out


def test_submitting_command_needs_signing_key(keyless_config, caplog):
    assert main(["--config", str(keyless_config), "claim"]) == 1
    assert "owner_signing_key_path" in caplog.text
