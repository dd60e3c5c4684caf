from django.core.management.base import BaseCommand

from notifications.services.outbox import process_pending


class Command(BaseCommand):
    help = "Deliver queued notification emails that are due (new or awaiting retry)."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="Maximum number of emails to attempt.")

    def handle(self, *args, **options):
        counts = process_pending(limit=options["limit"])
        self.stdout.write(
            self.style.SUCCESS(f"Sent {counts['sent']} notification(s); {counts['failed']} failed.")
        )
