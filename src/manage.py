"""Notification engine management CLI.

Database schema management plus the periodic maintenance jobs, for running
from cron or a Kubernetes CronJob instead of the HTTP maintenance endpoints.

Usage:
    python src/manage.py setup-db            # Create all tables
    python src/manage.py drop-db             # Drop all tables
    python src/manage.py sweep               # Recover stuck, dispatch due, retry failed
    python src/manage.py cleanup-endpoints   # Prune push tokens the gateway rejects
    python src/manage.py expire --retention-days 90
"""

import argparse
import sys


def _domain():
    from notifications.domain import notifications

    notifications.init()
    return notifications


def setup_database():
    from notifications.utils.db import setup_db

    domain = _domain()
    print("Creating notifications database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from notifications.utils.db import drop_db

    domain = _domain()
    print("Dropping notifications database schema...")
    drop_db(domain)
    print("Done.")


def run_sweep():
    from notifications.notification.scheduler import RunScheduledSweep

    domain = _domain()
    with domain.domain_context():
        result = domain.process(RunScheduledSweep(), asynchronous=False)
    print(
        f"Recovered {result['recovered']}, dispatched {result['dispatched']}, retried {result['retried']} notification(s)."
    )


def cleanup_endpoints():
    from notifications.endpoint.registration import CleanupInvalidEndpoints

    domain = _domain()
    with domain.domain_context():
        removed = domain.process(CleanupInvalidEndpoints(requested_by="manage.py"), asynchronous=False)
    print(f"Removed {removed} invalid push endpoint(s).")


def expire_notifications(retention_days=None):
    from notifications.notification.expiry import ExpireNotifications

    domain = _domain()
    with domain.domain_context():
        expired = domain.process(ExpireNotifications(retention_days=retention_days), asynchronous=False)
    print(f"Expired {expired} notification(s).")


def main():
    parser = argparse.ArgumentParser(description="Notification engine management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep", help="Run the scheduler sweep once")
    subparsers.add_parser("cleanup-endpoints", help="Remove push tokens the gateway no longer accepts")

    expire_parser = subparsers.add_parser("expire", help="Expire finished notifications past retention")
    expire_parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Override NOTIFICATION_RETENTION_DAYS",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "sweep":
        run_sweep()
    elif args.command == "cleanup-endpoints":
        cleanup_endpoints()
    elif args.command == "expire":
        expire_notifications(args.retention_days)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
