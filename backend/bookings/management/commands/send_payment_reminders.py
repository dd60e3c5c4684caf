from django.core.management.base import BaseCommand

from bookings.services.reminders import send_payment_reminders


class Command(BaseCommand):
    help = "Queue reminder emails for bookings with a payment due in the next few days."

    def handle(self, *args, **options):
        results = send_payment_reminders()
        queued = [result for result in results if result.queued]
        for result in queued:
            self.stdout.write(f"Reminder for booking {result.booking_id} -> {result.recipient} ({result.amount_due})")
        self.stdout.write(self.style.SUCCESS(f"Queued {len(queued)} payment reminder(s)."))
