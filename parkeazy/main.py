# File: parkeazy/main.py
"""
Main application entry point for Park-Eazy

    python -m parkeazy.main init-db     create the schema
    python -m parkeazy.main seed        load demo users and slots
    python -m parkeazy.main demo        book, extend and end a reservation
"""

from datetime import datetime, timedelta
from typing import List, Optional
import argparse
import logging
import os
import sys

from .application.currency import format_currency
from .application.dtos import (
    BookingRequestDTO, CardInputDTO, CheckoutReceiptDTO, ExtensionRequestDTO,
    MobileWalletInputDTO, PaymentSelectionDTO
)
from .config import Settings
from .domain.exceptions import ParkEazyError
from .domain.models import PaymentMethodType, VehicleType
from .infrastructure.factories import ServiceFactory, Services


DEMO_USER_EMAIL = "user@test.com"


def setup_logging(settings: Settings):
    """Setup application logging configuration"""
    if not os.path.exists(settings.log_dir):
        os.makedirs(settings.log_dir)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(os.path.join(settings.log_dir, settings.log_file)),
            logging.StreamHandler(sys.stdout)
        ]
    )
    return logging.getLogger(__name__)


class ParkEazyApplication:
    """Main application controller that sets up all components"""

    def __init__(self, settings: Optional[Settings] = None, services: Optional[Services] = None):
        self.settings = settings or Settings.from_env()
        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.info("Starting Park-Eazy...")

        try:
            self.services = services or ServiceFactory(self.settings).create_sqlalchemy_services()
        except Exception as e:
            self.logger.error(f"Failed to initialize components: {e}")
            raise

    def init_db(self) -> None:
        # Schema is created while wiring the SQLAlchemy services
        self.logger.info(f"Database ready at {self.settings.database_url}")

    def seed(self) -> None:
        added = ServiceFactory.seed(self.services)
        print(f"Seeded {added['users']} users and {added['slots']} parking slots")

    def demo(self) -> None:
        """Book the cheapest car slot for two hours, extend by one, then end it"""
        services = self.services
        ServiceFactory.seed(services)

        user = services.auth.login(DEMO_USER_EMAIL)
        print(f"Signed in as {user}")

        slots = services.slots.available(VehicleType.CAR)
        if not slots:
            print("No car slots are available")
            return
        slot = min(slots, key=lambda s: s.price_per_hour.amount)
        print(f"Booking {slot.name} at {format_currency(slot.price_per_hour)}/hour")

        start = datetime.now().replace(second=0, microsecond=0)
        expiry_year = (start.year + 2) % 100
        booking = services.checkout.book(BookingRequestDTO(
            slot_id=slot.id,
            start_time=start,
            end_time=start + timedelta(hours=2),
            payment=PaymentSelectionDTO(
                method_type=PaymentMethodType.CARD,
                card=CardInputDTO(
                    card_number="4242 4242 4242 4242",
                    expiry_date=f"12/{expiry_year:02d}",
                    cvc="123",
                    cardholder_name=user.name
                )
            )
        ))
        self._print_receipt("Booking", booking)

        extension = services.checkout.extend(ExtensionRequestDTO(
            reservation_id=booking.reservation.id,
            hours=1,
            payment=PaymentSelectionDTO(
                method_type=PaymentMethodType.BKASH,
                wallet=MobileWalletInputDTO(account_number="01712-345678")
            )
        ))
        self._print_receipt("Extension", extension)

        ended = services.reservations.end(booking.reservation.id)
        print(f"Reservation {ended.id} is {ended.status.value}; "
              f"total {format_currency(ended.total_cost)}")

        for method in services.vault.list(user.id):
            print(f"Saved payment method: {method.display_name}")
        for notification in services.inbox.drain():
            print(f"[{notification.priority}] {notification.title}: {notification.body}")

        services.auth.logout()

    @staticmethod
    def _print_receipt(title: str, receipt: CheckoutReceiptDTO) -> None:
        print(f"{title} paid: {format_currency(receipt.amount_charged)} via {receipt.instrument} "
              f"({receipt.transaction_id}); reservation total "
              f"{format_currency(receipt.reservation.total_cost)} until {receipt.reservation.end_time:%H:%M}")

    def close(self) -> None:
        self.services.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="parkeazy", description="Park-Eazy reservation core")
    parser.add_argument("--database-url", help="SQLAlchemy database URL (overrides PARKEAZY_DATABASE_URL)")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Create the database schema")
    subparsers.add_parser("seed", help="Load demo users and parking slots")
    subparsers.add_parser("demo", help="Run a booking, extension and end-of-stay")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    settings = Settings.from_env()
    if args.database_url:
        settings = settings.model_copy(update={'database_url': args.database_url})
    logger = setup_logging(settings)

    app = ParkEazyApplication(settings)
    try:
        if args.command == "init-db":
            app.init_db()
        elif args.command == "seed":
            app.seed()
        else:
            app.demo()
    except ParkEazyError as e:
        logger.error(f"{args.command} failed: {e}")
        print(e.user_message, file=sys.stderr)
        return 1
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
