#!/usr/bin/env python3
"""
Worker for the order email queue.

    python celery_worker.py
"""
import os

from dotenv import load_dotenv

load_dotenv()


def main() -> None:
    from core.celery import EMAIL_QUEUE, celery_app
    from core.logging import configure_logging

    configure_logging()
    celery_app.worker_main([
        "worker",
        "--loglevel=info",
        f"--queues={EMAIL_QUEUE}",
        f"--concurrency={os.getenv('CELERY_CONCURRENCY', '2')}",
        "--without-gossip",
        "--without-mingle",
    ])


if __name__ == "__main__":
    main()
