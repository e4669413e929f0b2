#!/usr/bin/env python3
"""
Start the ticketing email workers.
"""

import argparse
import subprocess

from ticketing_workers.celery_config import EMAIL_QUEUE
from ticketing_workers.task_logging import setup_logging

logger = setup_logging("INFO", "ticketing_workers")


def build_worker_command(concurrency: int = 4, loglevel: str = "info") -> list:
    return [
        'celery',
        '-A', 'ticketing_workers.tasks',
        'worker',
        f'--loglevel={loglevel.lower()}',
        f'--queues={EMAIL_QUEUE}',
        f'--concurrency={concurrency}',
        '--hostname=ticketing-email-worker@%h'
    ]


def start_email_workers(concurrency: int = 4, loglevel: str = "info") -> bool:
    """Start email notification workers."""
    try:
        cmd = build_worker_command(concurrency, loglevel)
        logger.info(f"Running command: {' '.join(cmd)}")
        subprocess.run(cmd, check=False)
        return True

    except KeyboardInterrupt:
        logger.info("Stopping email workers...")
        return True
    except Exception as e:
        logger.error(f"Failed to start email workers: {e}")
        return False


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Start ticketing email workers')
    parser.add_argument('--concurrency', type=int, default=4, help='Worker process count')
    parser.add_argument('--loglevel', default='info', help='Log level for the launcher and the workers')
    args = parser.parse_args()

    logger = setup_logging(args.loglevel, "ticketing_workers")
    start_email_workers(args.concurrency, args.loglevel)
