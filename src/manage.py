"""Checkout management CLI.

Database schema management and the scheduled sweeps.

Usage:
    python src/manage.py setup-db         # Create all tables
    python src/manage.py drop-db          # Drop all tables
    python src/manage.py sweep-refunds    # Re-check refunds stuck at the gateway
    python src/manage.py sync-payments    # Settle delayed payments whose outcome was missed
    python src/manage.py retry-webhooks   # Reprocess failed webhook deliveries
    python src/manage.py purge-webhooks   # Apply delivery log retention
"""

import argparse
import sys


def _domain():
    from checkout.domain import checkout

    checkout.init()
    return checkout


def setup_database():
    from checkout.utils.db import setup_db

    print("Creating checkout database schema...")
    setup_db(_domain())
    print("Done.")


def drop_database():
    from checkout.utils.db import drop_db

    print("Dropping checkout database schema...")
    drop_db(_domain())
    print("Done.")


def sweep_refunds():
    from checkout.refund.sweep import reconcile_pending_refunds
    from checkout.tasks.executor import run_post_tasks

    with _domain().domain_context():
        report = reconcile_pending_refunds()
    run_post_tasks(report.tasks)
    print(
        f"Checked {report.checked} refund(s): {report.updated} updated, {report.errors} error(s)"
        + (" (more pending)" if report.has_more else "")
    )


def sync_payments():
    from checkout.order.sweep import sync_async_payments
    from checkout.tasks.executor import run_post_tasks

    with _domain().domain_context():
        report = sync_async_payments()
    run_post_tasks(report.tasks)
    print(
        f"Checked {report.checked} order(s): {report.updated} updated, {report.errors} error(s)"
        + (" (more pending)" if report.has_more else "")
    )


def retry_webhooks():
    from checkout.tasks.executor import run_post_tasks
    from checkout.webhook.retry import retry_failed_webhooks

    with _domain().domain_context():
        report = retry_failed_webhooks()
    run_post_tasks(report.tasks)
    print(
        f"Orphaned: {report.orphaned}, retried: {report.retried}, succeeded: {report.succeeded}, "
        f"failed: {report.failed}, skipped: {report.skipped}"
    )


def purge_webhooks():
    from checkout.webhook.cleanup import purge_webhook_events

    with _domain().domain_context():
        deleted = purge_webhook_events()
    for status, count in deleted.items():
        print(f"  {status}: {count} deleted")


def main():
    commands = {
        "setup-db": (setup_database, "Create all database tables"),
        "drop-db": (drop_database, "Drop all database tables"),
        "sweep-refunds": (sweep_refunds, "Reconcile refunds still pending at the gateway"),
        "sync-payments": (sync_payments, "Settle delayed payments still pending at the gateway"),
        "retry-webhooks": (retry_webhooks, "Reprocess failed webhook deliveries"),
        "purge-webhooks": (purge_webhooks, "Delete old webhook delivery records"),
    }

    parser = argparse.ArgumentParser(description="Checkout management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, (_, help_text) in commands.items():
        subparsers.add_parser(name, help=help_text)

    args = parser.parse_args()

    if args.command not in commands:
        parser.print_help()
        sys.exit(1)
    commands[args.command][0]()


if __name__ == "__main__":
    main()
