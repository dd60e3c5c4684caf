from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import User
from bookings.milestones import calculate_deposit_amount, dump_milestones, generate_standard_milestones
from bookings.models import Booking, Client
from bookings.statuses import BookingStatus, PaymentStatus
from studios.models import Studio
from studios.services import create_studio_for_user

SEED_PASSWORD = "Momentum123!"
SUPERUSER_EMAIL = "admin@momentum.test"
SUPERUSER_PASSWORD = "AdminMomentum123!"

SAMPLE_CONTRACT = (
    "The photographer agrees to provide photography services on the event date. "
    "The deposit is non-refundable and secures the date. The remaining balance is "
    "due thirty days before the event."
)


class Command(BaseCommand):
    help = "Populate the local development database with sample data."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating photographers & studios"))
            owner = self._ensure_user(
                email="olivia@lightandlace.test",
                first_name="Olivia",
                last_name="Lens",
                display_name="Olivia Lens",
            )
            studio = self._ensure_studio(owner, business_name="Light & Lace Photography")

            self.stdout.write(self.style.MIGRATE_HEADING("Ensuring admin superuser"))
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating clients & bookings"))
            today = timezone.localdate()
            avery = self._ensure_client(studio, name="Avery & Sam", email="avery@example.test")
            jordan = self._ensure_client(studio, name="Jordan Portrait", email="jordan@example.test")

            self._create_booking(
                studio,
                avery,
                service_type=Booking.WEDDING,
                total_price=Decimal("4500.00"),
                event_date=today + timedelta(days=120),
                status=BookingStatus.PROPOSAL_SENT,
            )
            self._create_booking(
                studio,
                jordan,
                service_type=Booking.PORTRAIT,
                total_price=Decimal("650.00"),
                event_date=today + timedelta(days=32),
                status=BookingStatus.DRAFT,
                payment_due_date=today + timedelta(days=2),
            )

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {SUPERUSER_EMAIL} password: {SUPERUSER_PASSWORD}"))

    def _ensure_user(
        self,
        email: str,
        first_name: str,
        last_name: str,
        display_name: str,
    ) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={
                "username": email,
                "first_name": first_name,
                "last_name": last_name,
                "display_name": display_name,
            },
        )
        if created or not user.has_usable_password():
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
        return user

    def _ensure_studio(self, owner: User, business_name: str) -> Studio:
        studio = owner.studio_or_none
        if studio is None:
            studio = create_studio_for_user(owner, business_name=business_name)
        return studio

    def _ensure_client(self, studio: Studio, name: str, email: str) -> Client:
        client, _ = Client.objects.update_or_create(
            studio=studio,
            email=email,
            defaults={"name": name},
        )
        return client

    def _create_booking(
        self,
        studio: Studio,
        client: Client,
        *,
        service_type: str,
        total_price: Decimal,
        event_date,
        status: BookingStatus,
        payment_due_date=None,
    ) -> Booking:
        Booking.objects.filter(studio=studio, client=client, event_date=event_date).delete()
        deposit = calculate_deposit_amount(total_price)
        milestones = generate_standard_milestones(total_price, deposit, event_date)
        booking = Booking.objects.create(
            studio=studio,
            client=client,
            client_email=client.email,
            service_type=service_type,
            event_date=event_date,
            total_price=total_price,
            deposit_amount=deposit,
            payment_status=PaymentStatus.PENDING_DEPOSIT,
            status=status,
            payment_milestones=dump_milestones(milestones),
            payment_due_date=payment_due_date or event_date - timedelta(days=30),
            contract_text=SAMPLE_CONTRACT,
        )
        self.stdout.write(f"  {booking} -> portal token {booking.portal_token}")
        return booking

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "display_name": "Admin User",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
