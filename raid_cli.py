"""
Raid Pool CLI - run pool actions from the command line.

    raidpool --config raid.json mint-reference
    raidpool --config raid.json mint-pool --actions 10 --reward 1000000
    raidpool --config raid.json claim
    raidpool --config raid.json show
"""
import argparse
import logging
import sys

import pycardano as pc

from raid_cardano_backend import ChainContextLedger, PyCardanoAssembler, blockfrost_context
from raid_contract_config import load_config
from raid_errors import ConfigurationError, RaidError
from raid_identity import catalog_from_config
from raid_pool_client import PoolClient

logger = logging.getLogger("raidpool")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="raidpool", description="Raid reward-pool actions")
    parser.add_argument("--config", default="raid.json", help="Deployment config (JSON)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("show", help="Print derived identities and the pool state")
    sub.add_parser("mint-reference", help="Mint the reference token")

    mint = sub.add_parser("mint-pool", help="Mint the raid token and lock the bounty")
    mint.add_argument("--actions", type=int, required=True, help="Number of claims")
    mint.add_argument("--reward", type=int, required=True, help="Lovelace per claim")

    sub.add_parser("claim", help="Pay one reward")

    update = sub.add_parser("update", help="Set the remaining claim count")
    update.add_argument("--remaining", type=int, required=True)

    sub.add_parser("close", help="Spend the pool and burn the raid token")

    ref = sub.add_parser("update-reference", help="Replace the reference datum")
    ref.add_argument("--hash", action="append", type=bytes.fromhex, dest="hashes",
                     help="Authorized spending hash (hex)")
    ref.add_argument("--locked-value", action="append", type=int, dest="values", help="Allowed overhead")
    return parser


def show(client: PoolClient) -> None:
    catalog = client.catalog
    print(f"Owner PKH:          {catalog.owner_pkh.hex()}")
    print(f"Reference policy:   {catalog.reference_policy_id.hex()}")
    print(f"Reference address:  {catalog.reference_address}")
    print(f"Raid policy:        {catalog.raid_policy_id.hex()}")
    print(f"Raid validator:     {catalog.raid_validator_hash.hex()}")
    print(f"Pool address:       {catalog.pool_address}")
    print(f"Pool state:         {client.state().value}")


READ_ONLY_COMMANDS = ("show",)


def run(args) -> int:
    config = load_config(args.config)
    context = blockfrost_context(config)
    catalog = catalog_from_config(config)

    assembler = None
    if args.command not in READ_ONLY_COMMANDS:
        if config.owner_signing_key_path is None:
            raise ConfigurationError("owner_signing_key_path is required to sign transactions")
        signing_key = pc.PaymentSigningKey.load(str(config.owner_signing_key_path))
        assembler = PyCardanoAssembler(context, catalog, signing_key)

    client = PoolClient(
        catalog,
        ChainContextLedger(context, poll_interval=config.poll_interval),
        assembler,
        fixed_overhead=config.fixed_overhead,
        allowed_locked_values=config.allowed_locked_values,
        confirm_timeout=config.confirm_timeout,
        max_retries=config.max_retries,
    )

    if args.command == "show":
        show(client)
        return 0
    if args.command == "mint-reference":
        result = client.mint_reference()
        print(f"Minted Reference Token\n    Tx Hash: {result.request_id}\n    PolicyId: {catalog.reference_policy_id.hex()}")
    elif args.command == "mint-pool":
        result = client.mint_pool(args.actions, args.reward)
        print(f"Created Raid!\n    Tx Hash: {result.request_id}\n    PolicyId: {catalog.raid_policy_id.hex()}")
    elif args.command == "claim":
        result = client.claim()
        print(f"Distributed Reward!\n    Tx Hash: {result.request_id}")
    elif args.command == "update":
        result = client.update(args.remaining)
        print(f"Updated Pool!\n    Tx Hash: {result.request_id}")
    elif args.command == "close":
        result = client.close()
        print(f"Burned Token!\n    Tx Hash: {result.request_id}")
    elif args.command == "update-reference":
        result = client.update_reference(args.hashes, args.values)
        print(f"Updated Ref Token!\n    Tx Hash: {result.request_id}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run(args)
    except RaidError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
