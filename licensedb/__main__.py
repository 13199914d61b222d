"""Maintenance entry point."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .codes import CodeLifecycleManager, CodeVerifier
from .config import Config, load_config
from .errors import LicenseDBError
from .store import open_store

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="licensedb",
        description="Manage access codes and records in the license database.",
    )
    parser.add_argument("--data-file", help="SQLite file (overrides DATA_FILE)")
    sub = parser.add_subparsers(dest="command", required=True)

    regen = sub.add_parser("regenerate", help="Issue a new admin/viewer code pair")
    regen.add_argument("user_id", type=int)

    verify = sub.add_parser("verify", help="Check a presented code")
    verify.add_argument("code")

    sub.add_parser("stats", help="Show record statistics")

    export = sub.add_parser("export", help="Dump every collection to a JSON file")
    export.add_argument("file")

    imp = sub.add_parser("import", help="Load collections from a JSON file")
    imp.add_argument("file")
    return parser


async def run(args: argparse.Namespace, config: Config) -> int:
    """Run one command against the configured store; returns the exit status."""
    async with open_store(args.data_file or config.data_file) as store:
        if args.command == "regenerate":
            manager = CodeLifecycleManager(
                store,
                max_attempts=config.max_code_attempts,
                settle_delay=config.verify_settle_delay,
                retry_delay=config.verify_retry_delay,
                allow_duplicates=config.allow_duplicate_codes,
            )
            if await store.get_user(args.user_id) is None:
                logger.error(f"User {args.user_id} not found")
                return 1
            codes = await manager.regenerate_codes(args.user_id)
            print(json.dumps({"adminCode": codes.admin_code, "viewerCode": codes.viewer_code}))
            return 0

        if args.command == "verify":
            verifier = CodeVerifier(store, validity_days=config.code_validity_days)
            result = await verifier.verify(args.code)
            print(json.dumps(result.to_dict(), ensure_ascii=False))
            return 0 if result.ok else 1

        if args.command == "stats":
            print(json.dumps(await store.get_stats(), indent=2))
            return 0

        if args.command == "export":
            data = await store.export_data()
            with open(args.file, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            logger.info(f"Exported database to {args.file}")
            return 0

        if args.command == "import":
            with open(args.file, "r", encoding="utf-8") as f:
                data = json.load(f)
            written = await store.import_data(data)
            print(json.dumps(written))
            return 0

    return 2


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        status = asyncio.run(run(args, config))
    except LicenseDBError as e:
        logger.error(f"{args.command} failed: {type(e).__name__}: {e}")
        status = 1
    except KeyboardInterrupt:
        status = 130
    sys.exit(status)


if __name__ == "__main__":
    main()
