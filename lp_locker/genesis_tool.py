"""
Locker Genesis Tool

Creates a locker database from a configuration file, so that the initial
protocol parameters and the authority are set up in a transparent and
auditable way.
"""
import json
import argparse
from pathlib import Path

from lp_locker.config import Config, LockerParams
from lp_locker.crypto import (
    generate_hash,
    generate_key_pair,
    public_key_to_address,
    serialize_private_key,
    serialize_public_key,
)
from lp_locker.db import DB
from lp_locker.locker import LOCKER_ADDRESS
from lp_locker.proxy import LockerProxy
from lp_locker.router import ConstantProductRouter


def open_locker(config: Config, db: DB) -> LockerProxy:
    """Proxy over db with the configured router registered."""
    router = ConstantProductRouter(bytes.fromhex(config.locker.router))
    return LockerProxy(db, routers={router.address: router}, chain_id=config.chain.chain_id)


def create_locker(config_path: str, output_db_path: str) -> bool:
    """
    Initializes a new locker database from a configuration file.

    Args:
        config_path (str): Path to the configuration JSON file.
        output_db_path (str): Path to store the newly created database.
    """
    print(f"Loading locker configuration from: {config_path}")
    config = Config.from_file(config_path)

    db_path = Path(output_db_path)
    if db_path.exists():
        print(f"Error: Output database path '{db_path}' already exists. Please remove it first.")
        return False

    with DB(str(db_path)) as db:
        locker = open_locker(config, db)
        authority = bytes.fromhex(config.locker.authority)
        locker.initialize(config.locker.to_locker_dict(LOCKER_ADDRESS), authority)

        print("\nLocker initialized successfully!")
        print(f"  - Authority: {authority.hex()}")
        print(f"  - State Root: {locker.store.state_root().hex()}")
        print(f"Locker database initialized at: {db_path}")
    return True


def show_info(config_path: str, db_path: str):
    """Prints the stored config record and the pool summary."""
    config = Config.from_file(config_path)
    with DB(db_path, create_if_missing=False) as db:
        locker = open_locker(config, db)
        snapshot = locker.get_config()
        locked, issued, deposited, available = locker.get_pool_info()

    print(json.dumps(snapshot, indent=2))
    print(f"\nLocked liquidity: {locked}")
    print(f"Rewards issued:   {issued}")
    print(f"Rewards deposited: {deposited}")
    print(f"Rewards available: {available}")


def generate_sample_config(output_path: str) -> Config:
    """Generates a sample locker configuration with a fresh authority key."""
    priv, pub = generate_key_pair()
    authority = public_key_to_address(serialize_public_key(pub))

    utility_token = generate_hash(b"SAMPLE:utility")[-20:]
    reward_token = generate_hash(b"SAMPLE:reward")[-20:]
    router = ConstantProductRouter(generate_hash(b"SAMPLE:router")[-20:])

    config = Config.default()
    config.locker = LockerParams(
        authority=authority.hex(),
        utility_token=utility_token.hex(),
        reward_token=reward_token.hex(),
        router=router.address.hex(),
        liquidity_token=router.pair_for(utility_token).hex(),
    )
    config.to_file(output_path)

    print(f"\nGenerated sample locker configuration at: {output_path}")
    print("Please review and edit this file before creating the locker.")
    print("\nSample authority key (DO NOT USE IN PRODUCTION):")
    print(f"  - Address {authority.hex()}:\n{serialize_private_key(priv)}")
    return config


def main(argv=None):
    parser = argparse.ArgumentParser(description="Locker Genesis Tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample locker.json")
    parser_sample.add_argument("--output", type=str, default="locker.json", help="Output file path")

    parser_create = subparsers.add_parser("create", help="Create the locker database from a config file")
    parser_create.add_argument("--config", type=str, default="locker.json", help="Path to config file")
    parser_create.add_argument("--output-db", type=str, required=True, help="Path for the new locker database")

    parser_info = subparsers.add_parser("info", help="Show the stored config and pool summary")
    parser_info.add_argument("--config", type=str, default="locker.json", help="Path to config file")
    parser_info.add_argument("--db", type=str, required=True, help="Path to the locker database")

    args = parser.parse_args(argv)

    if args.command == "sample-config":
        generate_sample_config(args.output)
    elif args.command == "create":
        if not create_locker(args.config, args.output_db):
            return 1
    elif args.command == "info":
        show_info(args.config, args.db)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
