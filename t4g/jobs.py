"""
t4g.jobs — Scheduled batch resets, ``python -m t4g.jobs <job>``
================================================================

Cron-style entry point for the window resets the API never triggers on
its own:

    0 0 * * 0   python -m t4g.jobs weekly        # Sunday 00:00 UTC
    0 0 1 * *   python -m t4g.jobs monthly       # 1st of the month
                python -m t4g.jobs leaderboard   # manual / testing only

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (timeouts).
3. Create the engine and run the job; each reset is idempotent within
   its window, so a retried cron run is harmless.
"""

from __future__ import annotations

import argparse
import logging
import sys

from dotenv import load_dotenv

from t4g.config import load_config
from t4g.database.engine import create_db_engine
from t4g.services import eligibility_service, leaderboard_service
from t4g.services.admin_service import SYSTEM_ACTOR

logger = logging.getLogger("t4g.jobs")

JOBS = ("weekly", "monthly", "leaderboard")


def run_job(engine, job: str, *, lock_timeout: float) -> int:
    """Run one reset job and return the number of rows it touched."""
    if job == "weekly":
        return eligibility_service.reset_weekly_counters(engine, actor_id=SYSTEM_ACTOR)
    if job == "monthly":
        return eligibility_service.reset_monthly_counters(engine, actor_id=SYSTEM_ACTOR)
    if job == "leaderboard":
        return leaderboard_service.reset_leaderboard(
            engine, actor_id=SYSTEM_ACTOR, lock_timeout=lock_timeout
        )
    raise ValueError(f"Unknown job: {job}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="t4g.jobs", description=__doc__.splitlines()[1])
    parser.add_argument("job", choices=JOBS)
    parser.add_argument("--config", default=None, help="path to config.yaml")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    load_dotenv()
    cfg = load_config(args.config)

    try:
        engine = create_db_engine(cfg.db_timeout_seconds)
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1

    try:
        touched = run_job(engine, args.job, lock_timeout=cfg.lock_timeout_seconds)
    except Exception:
        logger.exception("Job %s failed", args.job)
        return 1
    finally:
        engine.dispose()

    logger.info("Job %s finished (%d rows)", args.job, touched)
    return 0


if __name__ == "__main__":
    sys.exit(main())
