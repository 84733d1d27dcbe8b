from datetime import date

from django.core.management.base import BaseCommand, CommandError

from apps.notifications.reminders import send_appointment_reminders


class Command(BaseCommand):
    help = "Emails a reminder for every non-cancelled appointment scheduled for tomorrow."

    def add_arguments(self, parser):
        parser.add_argument(
            "--date",
            dest="today",
            help="Run as if today were this ISO date (YYYY-MM-DD).",
        )

    def handle(self, *args, **options):
        today = None
        if options.get("today"):
            try:
                today = date.fromisoformat(options["today"])
            except ValueError:
                raise CommandError("--date must be an ISO date (YYYY-MM-DD)")

        result = send_appointment_reminders(today=today)

        self.stdout.write(
            f"Reminders for {result.target_date.isoformat()}: {result.sent} sent, {len(result.failed)} failed."
        )
        for appointment_id in result.failed:
            self.stdout.write(f"  failed: {appointment_id}")
