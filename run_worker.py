#!/usr/bin/env python
"""Run the consistency worker, or a single scan inline.

    python run_worker.py                 # arq worker with the nightly cron
    python run_worker.py --scan USER_ID  # one scan, printed as JSON
"""

import argparse
import asyncio
import json
import logging

from arq.worker import Worker

from studybuddy.workers.tasks import WorkerSettings, scan_user_consistency, shutdown, startup

logging.basicConfig(level=logging.INFO)


async def run_worker(burst: bool) -> None:
    worker = Worker(
        functions=WorkerSettings.functions,
        cron_jobs=WorkerSettings.cron_jobs,
        on_startup=WorkerSettings.on_startup,
        on_shutdown=WorkerSettings.on_shutdown,
        redis_settings=WorkerSettings.redis_settings,
        max_jobs=WorkerSettings.max_jobs,
        job_timeout=WorkerSettings.job_timeout,
        keep_result=WorkerSettings.keep_result,
        burst=burst,
    )
    await worker.main()


async def run_scan(user_id: str, limit: int | None) -> None:
    ctx: dict = {}
    await startup(ctx)
    try:
        summary = await scan_user_consistency(ctx, user_id, limit=limit)
    finally:
        await shutdown(ctx)
    print(json.dumps(summary, indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--scan", metavar="USER_ID", help="scan one user and exit")
    parser.add_argument("--limit", type=int, help="max contents to audit with --scan")
    parser.add_argument("--burst", action="store_true", help="exit once the queue is empty")
    args = parser.parse_args()

    if args.scan:
        asyncio.run(run_scan(args.scan, args.limit))
    else:
        asyncio.run(run_worker(args.burst))


if __name__ == "__main__":
    main()
