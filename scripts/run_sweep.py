"""Run one bid finalization sweep against the configured store and mailer.

Intended for cron or a scheduler job that fires every 24 hours.
Exit code is non-zero only when the selection query fails.
"""

import asyncio
import logging
import sys

import orjson

from market_notify.bids import BidFinalizationSweep, SweepSelectionError
from market_notify.config import get_server_config
from market_notify.mail import build_mailer
from market_notify.storage import build_storage


async def main() -> int:
    config = get_server_config()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    storage = build_storage(config)
    mailer = build_mailer(config.mail)
    sweep = BidFinalizationSweep.from_config(config, storage, mailer)
    try:
        summary = await sweep.run()
    except SweepSelectionError as exc:
        sys.stdout.write(orjson.dumps(exc.summary.to_dict(), option=orjson.OPT_INDENT_2).decode() + "\n")
        return 1
    finally:
        await mailer.close()
        await storage.close()
    sys.stdout.write(orjson.dumps(summary.to_dict(), option=orjson.OPT_INDENT_2).decode() + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
