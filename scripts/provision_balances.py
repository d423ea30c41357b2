#!/usr/bin/env python3
"""Leave balance provisioning — create the year's missing leave balances.

Purpose: cron entry point for the yearly (or on-demand) provisioning run.
Creates one balance per active employee × active policy that does not
have one yet, so it is safe to run repeatedly.

Usage:
    python -m scripts.provision_balances                      # current year
    python -m scripts.provision_balances --year 2027
    python -m scripts.provision_balances --no-carry-forward   # fresh allocations only

Requires in .env (project root):
    DATABASE_URL, JWT_SECRET
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hrms.common.transaction import UnitOfWork  # noqa: E402
from hrms.database import async_session_factory, engine  # noqa: E402
from hrms.leave.provisioning import BalanceProvisioningJob  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("provision_balances")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--year", type=int, default=None,
        help="Balance year to provision (default: current year)",
    )
    parser.add_argument(
        "--no-carry-forward", action="store_true",
        help="Do not carry unused prior-year days into the new balances",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    job = BalanceProvisioningJob(UnitOfWork(async_session_factory))
    try:
        result = await job.run(args.year, carry_forward=not args.no_carry_forward)
    finally:
        await engine.dispose()

    print(f"""
{'=' * 60}
  PROVISIONING COMPLETE
  Year    : {result.year}
  Created : {result.created}
  Skipped : {result.skipped} (already present)
{'=' * 60}
""")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logger.info("Provisioning leave balances (year=%s)", args.year or "current")
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
