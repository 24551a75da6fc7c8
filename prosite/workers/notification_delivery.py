"""Notification delivery worker.

Usage:
    python -m prosite.workers.notification_delivery --once
    python -m prosite.workers.notification_delivery --loop

Drains the notification outbox outside the API process. Uses the same
settings as the API (DATABASE_URL, RESEND_API_KEY, EMAIL_FROM,
NOTIFICATION_MAX_ATTEMPTS, NOTIFICATION_BATCH_SIZE, NOTIFICATION_POLL_SECONDS).
"""
from __future__ import annotations

import argparse
import os
import time
from typing import Optional

from prosite.core.config import Settings, settings
from prosite.core.database import Database
from prosite.core.logging import configure_logging
from prosite.features.notifications.dispatcher import NotificationDispatcher
from prosite.features.notifications.email import ResendEmailSender


def build_dispatcher(cfg: Settings, database: Optional[Database] = None) -> NotificationDispatcher:
    return NotificationDispatcher(
        database or Database.from_settings(cfg),
        ResendEmailSender(cfg.RESEND_API_KEY, cfg.EMAIL_FROM),
        max_attempts=cfg.NOTIFICATION_MAX_ATTEMPTS,
        batch_size=cfg.NOTIFICATION_BATCH_SIZE,
        owner=f"worker-{os.getpid()}",
    )


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Notification delivery worker")
    parser.add_argument("--once", action="store_true", help="Process due notifications once and exit")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument(
        "--sleep",
        type=float,
        default=settings.NOTIFICATION_POLL_SECONDS,
        help="Seconds to sleep between loops (when --loop)",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    dispatcher = build_dispatcher(settings)

    if not settings.NOTIFICATIONS_ENABLED:
        print("[notification-worker] Notifications disabled (NOTIFICATIONS_ENABLED=false). Exiting.")
        return

    if args.once:
        sent = dispatcher.run_once()
        print(f"[notification-worker] Sent: {sent}")
        return

    # Default to loop mode when not explicitly once
    print(f"[notification-worker] Starting loop (sleep={args.sleep}s). CTRL+C to stop.")
    try:
        while True:
            sent = dispatcher.run_once()
            if sent:
                print(f"[notification-worker] Sent {sent} notifications")
            time.sleep(args.sleep)
    except KeyboardInterrupt:
        print("[notification-worker] Stopped")
    finally:
        dispatcher.db.dispose()


if __name__ == "__main__":
    main()
