"""Reconcile local certificate records with the ledger (run from cron)."""

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from cert_hub.exceptions import LedgerUnavailableError
from cert_hub.ledger import get_ledger_client
from cert_hub.reconciler import LedgerReconciler
from cert_hub.store import CertificateStore


class Command(BaseCommand):
    help = "Confirm, flag, recover and mirror revocations between the certificate store and the ledger"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum unconfirmed records examined and ledger entries healed (default: CERT_HUB_SWEEP_LIMIT)",
        )
        parser.add_argument("--database", default="default", help="Database alias to reconcile")

    def handle(self, *args, **options):
        limit = options["limit"] or settings.CERT_HUB_SWEEP_LIMIT
        reconciler = LedgerReconciler(get_ledger_client(), CertificateStore(using=options["database"]))

        try:
            report = reconciler.sweep(limit=limit)
        except LedgerUnavailableError as e:
            raise CommandError(f"Ledger unavailable, sweep aborted: {e.message}") from e

        summary = report.as_dict()
        self.stdout.write(
            self.style.SUCCESS(
                "Reconciliation finished: "
                + ", ".join(f"{key}={value}" for key, value in summary.items())
            )
        )
        for content_hash in report.flagged:
            self.stdout.write(self.style.WARNING(f"Needs attention: {content_hash}"))
