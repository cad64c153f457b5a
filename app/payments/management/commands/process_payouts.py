"""
Schedule and process provider payouts from the command line.

Usage:
    python manage.py process_payouts --schedule
    python manage.py process_payouts --process
    python manage.py process_payouts --all
    python manage.py process_payouts --batch=BATCH-20240105-AB12CD

Exits non-zero when no action is given or when any processed payout fails.
"""

from django.core.management.base import BaseCommand, CommandError

from payments.services import PayoutScheduler


class Command(BaseCommand):
    help = "Process scheduled provider payouts"

    def add_arguments(self, parser):
        parser.add_argument(
            "--schedule",
            action="store_true",
            help="Schedule new payouts for eligible providers",
        )
        parser.add_argument(
            "--process",
            action="store_true",
            help="Process due scheduled payouts",
        )
        parser.add_argument(
            "--batch",
            metavar="BATCH_ID",
            help="Process a specific batch id",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Both schedule and process payouts",
        )

    def handle(self, *args, **options):
        scheduler = PayoutScheduler()

        if options["batch"]:
            self._process_batch(scheduler, options["batch"])
            return

        schedule = options["schedule"] or options["all"]
        process = options["process"] or options["all"]
        if not schedule and not process:
            raise CommandError("Please specify --schedule, --process, --all, or --batch=<id>")

        scheduled_count = 0
        processed_count = 0
        failed_count = 0

        if schedule:
            self.stdout.write("Scheduling payouts for eligible providers...")
            scheduled_count = scheduler.schedule_payouts()
            self.stdout.write(f"Scheduled {scheduled_count} new payouts.")

        if process:
            self.stdout.write("Processing due payouts...")
            results = scheduler.run_scheduled_payouts()
            processed_count = results["processed"]
            failed_count = results["failed"]
            self.stdout.write(f"Processed {processed_count} payouts.")

        if failed_count:
            raise CommandError(f"{failed_count} payouts failed. Check logs for details.")

        self.stdout.write(
            self.style.SUCCESS(f"Scheduled: {scheduled_count}  Processed: {processed_count}")
        )

    def _process_batch(self, scheduler: PayoutScheduler, batch_id: str) -> None:
        self.stdout.write(f"Processing batch: {batch_id}")
        results = scheduler.process_batch(batch_id)

        self.stdout.write(f"Total: {results['total']}")
        self.stdout.write(f"Processed: {results['processed']}")
        self.stdout.write(f"Failed: {results['failed']}")

        if results["failed"]:
            raise CommandError(f"{results['failed']} payouts failed. Check logs for details.")

        self.stdout.write(self.style.SUCCESS("Batch processed successfully."))
