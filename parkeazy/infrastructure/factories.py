# File: parkeazy/infrastructure/factories.py
"""
Factory Pattern Implementation for Park-Eazy

This module centralizes object creation:
1. Domain Object Factories - slots and users from raw values or seed data
2. Service Factory - wires repositories, messaging and application services
   into one Services container, backed by SQLAlchemy or by memory
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings
from ..domain.models import (
    GeoPoint, Money, ParkingSlot, SlotStatus, User, UserRole, VehicleType
)
from ..domain.pricing import HourlyPricingStrategy, PricingStrategy
from .geocoding import NominatimGeocoder
from .messaging import (
    EventBus, EventHandler, EventType, MongoLogArchiver, NotificationInbox,
    RedisNotificationPublisher
)
from .payments import PaymentGateway, SimulatedPaymentGateway
from .repositories import Base, InMemoryDatabase, InMemoryUnitOfWork, SQLAlchemyUnitOfWork, UnitOfWork
from .resilience import RetryPolicy

if TYPE_CHECKING:
    from ..application.audit import AuditLogger
    from ..application.checkout import CheckoutFlow
    from ..application.currency import CurrencyManager
    from ..application.payment_vault import PaymentVault
    from ..application.reservation_manager import ReservationManager
    from ..application.slot_registry import SlotRegistry
    from ..application.users import SessionAuthProvider, UserDirectory


logger = logging.getLogger(__name__)


# ============================================================================
# DOMAIN OBJECT FACTORIES
# ============================================================================

SEED_SLOTS: List[Dict[str, Any]] = [
    {'name': 'GEC-01', 'location': (22.359, 91.821), 'address': 'Near GEC Convention Hall, Chittagong',
     'vehicle_type': 'Car', 'price_per_hour': 50, 'features': ['CCTV', 'Guarded'],
     'operating_hours': '24/7', 'rating': 4.8, 'review_count': 35},
    {'name': 'GEC-02', 'location': (22.357, 91.822), 'address': 'Central Plaza, GEC Circle, Chittagong',
     'vehicle_type': 'SUV', 'price_per_hour': 70, 'features': ['Multi-storey parking', 'Valet parking'],
     'operating_hours': '9 AM - 11 PM', 'rating': 4.5, 'review_count': 20},
    {'name': 'AGB-01', 'location': (22.333, 91.815), 'address': 'Agrabad Access Road, Chittagong',
     'vehicle_type': 'Bike', 'price_per_hour': 20, 'features': ['Guarded'],
     'operating_hours': '24/7', 'rating': 4.2, 'review_count': 15},
    {'name': 'AGB-02', 'location': (22.335, 91.817), 'address': 'Badamtali, Agrabad, Chittagong',
     'vehicle_type': 'Truck', 'price_per_hour': 100, 'features': ['Guarded', 'CCTV'],
     'operating_hours': '24/7', 'rating': 4.0, 'review_count': 10},
    {'name': 'NAS-01', 'location': (22.366, 91.832), 'address': 'CDA Avenue, Nasirabad, Chittagong',
     'vehicle_type': 'Minivan', 'price_per_hour': 80, 'features': ['CCTV', 'Multi-storey parking'],
     'operating_hours': '8 AM - 12 AM', 'rating': 4.6, 'review_count': 28},
    {'name': 'Gulshan DCC-01', 'location': (23.7925, 90.4078), 'address': 'Gulshan 1 DCC Market, Dhaka',
     'vehicle_type': 'SUV', 'price_per_hour': 120, 'features': ['CCTV', 'Guarded', 'Multi-storey parking'],
     'operating_hours': '24/7', 'rating': 4.9, 'review_count': 150},
    {'name': 'Dhanmondi-32', 'location': (23.7461, 90.3752), 'address': 'Rd No 32, Dhanmondi, Dhaka',
     'vehicle_type': 'Bike', 'price_per_hour': 30, 'features': ['CCTV'],
     'operating_hours': '24/7', 'rating': 4.3, 'review_count': 50},
    {'name': 'Motijheel-01', 'location': (23.7277, 90.4191), 'address': 'Shapla Chattar, Motijheel, Dhaka',
     'vehicle_type': 'Car', 'price_per_hour': 90, 'features': ['Guarded'],
     'operating_hours': '9 AM - 9 PM', 'rating': 4.1, 'review_count': 95},
    {'name': 'Zindabazar-01', 'location': (24.8949, 91.8687), 'address': 'Zindabazar Point, Sylhet',
     'vehicle_type': 'Car', 'price_per_hour': 40, 'features': ['Guarded'],
     'operating_hours': '8 AM - 10 PM', 'rating': 4.3, 'review_count': 15},
    {'name': 'Ambarkhana-01', 'location': (24.9021, 91.8679), 'address': 'Ambarkhana Point, Sylhet',
     'vehicle_type': 'Bike', 'price_per_hour': 15, 'features': [], 'operating_hours': '24/7'},
]

SEED_USERS: List[Dict[str, Any]] = [
    {'name': 'Test User', 'email': 'user@test.com', 'role': 'user'},
    {'name': 'Jane Doe', 'email': 'jane.doe@test.com', 'role': 'user'},
    {'name': 'Karim Rahman', 'email': 'karim.rahman@test.com', 'role': 'user'},
    {'name': 'Test Admin', 'email': 'admin@test.com', 'role': 'admin'},
    {'name': 'Super Admin', 'email': 'superadmin@parkeazy.com', 'role': 'super_admin'},
]


class ParkingSlotFactory:
    """Factory for creating ParkingSlot domain objects"""

    def __init__(self, currency: str = "BDT"):
        self.currency = currency

    def create(
        self,
        name: str,
        latitude: float,
        longitude: float,
        address: str,
        price_per_hour: Union[Money, Decimal, int, float, str],
        vehicle_type: Union[VehicleType, str] = VehicleType.CAR,
        status: Union[SlotStatus, str] = SlotStatus.AVAILABLE,
        features: Optional[Iterable[str]] = None,
        operating_hours: str = "24/7",
        rating: Optional[float] = None,
        review_count: Optional[int] = None,
        id: Optional[str] = None
    ) -> ParkingSlot:
        """
        Create a ParkingSlot

        Args:
            price_per_hour: Money, or an amount in the factory's currency
            vehicle_type, status: enum members or their string values
        """
        if not isinstance(price_per_hour, Money):
            price_per_hour = Money(Decimal(str(price_per_hour)), self.currency)

        return ParkingSlot(
            id=id,
            name=name,
            location=GeoPoint(float(latitude), float(longitude)),
            address=address,
            price_per_hour=price_per_hour,
            vehicle_type=VehicleType(vehicle_type),
            status=SlotStatus(status),
            features=features,
            operating_hours=operating_hours,
            rating=rating,
            review_count=review_count
        )

    def create_from_dict(self, data: Dict[str, Any]) -> ParkingSlot:
        """Create a slot from a seed record with a (lat, lon) location pair"""
        data = dict(data)
        latitude, longitude = data.pop('location')
        return self.create(latitude=latitude, longitude=longitude, **data)

    def create_seed_slots(self) -> List[ParkingSlot]:
        return [self.create_from_dict(record) for record in SEED_SLOTS]


class UserFactory:
    """Factory for creating User domain objects"""

    def create(self, name: str, email: str, role: Union[UserRole, str] = UserRole.USER,
               id: Optional[str] = None) -> User:
        return User(name=name, email=email, role=UserRole(role), id=id)

    def create_seed_users(self) -> List[User]:
        return [self.create(**record) for record in SEED_USERS]


# ============================================================================
# SERVICE FACTORY
# ============================================================================

@dataclass
class Services:
    """Fully wired application services sharing one store and one event bus"""
    settings: Settings
    uow_factory: Callable[[], UnitOfWork]
    event_bus: EventBus
    inbox: NotificationInbox
    gateway: PaymentGateway
    audit: 'AuditLogger'
    auth: 'SessionAuthProvider'
    slots: 'SlotRegistry'
    reservations: 'ReservationManager'
    vault: 'PaymentVault'
    checkout: 'CheckoutFlow'
    users: 'UserDirectory'
    currency: 'CurrencyManager'
    geocoder: NominatimGeocoder
    engine: Optional[Engine] = None
    sinks: List[EventHandler] = field(default_factory=list)

    def close(self) -> None:
        """Release external connections"""
        for sink in self.sinks:
            close = getattr(sink, 'close', None)
            if close is not None:
                close()
        if self.engine is not None:
            self.engine.dispose()


class ServiceFactory:
    """Factory for creating application services"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[PaymentGateway] = None,
        pricing: Optional[PricingStrategy] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.settings = settings or Settings()
        self.gateway = gateway or SimulatedPaymentGateway()
        self.pricing = pricing or HourlyPricingStrategy()
        self.clock = clock

    # ------------------------------------------------------------------
    # Store wiring
    # ------------------------------------------------------------------

    @staticmethod
    def build_engine(database_url: str) -> Engine:
        """Engine for database_url; in-memory SQLite shares one connection"""
        if database_url.startswith('sqlite'):
            kwargs: Dict[str, Any] = {'connect_args': {'check_same_thread': False}}
            if database_url in ('sqlite://', 'sqlite:///:memory:'):
                kwargs['poolclass'] = StaticPool
            return create_engine(database_url, **kwargs)
        return create_engine(database_url, pool_pre_ping=True)

    def create_sqlalchemy_services(self, engine: Optional[Engine] = None, create_schema: bool = True) -> Services:
        engine = engine or self.build_engine(self.settings.database_url)
        if create_schema:
            Base.metadata.create_all(engine)
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        services = self.create_services(lambda: SQLAlchemyUnitOfWork(session_factory))
        services.engine = engine
        logger.info(f"Services wired to {engine.url.render_as_string(hide_password=True)}")
        return services

    def create_in_memory_services(self, db: Optional[InMemoryDatabase] = None) -> Services:
        db = db or InMemoryDatabase()
        lock_timeout = self.settings.store_lock_timeout_seconds
        return self.create_services(lambda: InMemoryUnitOfWork(db, lock_timeout=lock_timeout))

    # ------------------------------------------------------------------
    # Messaging wiring
    # ------------------------------------------------------------------

    def create_event_bus(self) -> Tuple[EventBus, NotificationInbox, List[EventHandler]]:
        bus = EventBus()
        inbox = NotificationInbox()
        bus.subscribe(EventType.NOTIFICATION_RAISED, inbox)

        sinks: List[EventHandler] = []
        if self.settings.redis_url:
            publisher = RedisNotificationPublisher(self.settings.redis_url, channel=self.settings.redis_channel)
            bus.subscribe(EventType.NOTIFICATION_RAISED, publisher)
            sinks.append(publisher)
        if self.settings.mongo_url:
            archiver = MongoLogArchiver(self.settings.mongo_url, database=self.settings.mongo_database)
            bus.subscribe(EventType.LOG_RECORDED, archiver)
            sinks.append(archiver)
        return bus, inbox, sinks

    def create_read_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.settings.read_max_retries,
            base_timeout=self.settings.read_timeout_seconds,
            timeout_multiplier=self.settings.read_timeout_multiplier,
            backoff_base=self.settings.read_backoff_seconds
        )

    # ------------------------------------------------------------------
    # Application services
    # ------------------------------------------------------------------

    def create_services(self, uow_factory: Callable[[], UnitOfWork]) -> Services:
        """Wire every application service around uow_factory"""
        from ..application.audit import AuditLogger
        from ..application.checkout import CheckoutFlow
        from ..application.currency import CurrencyManager
        from ..application.payment_vault import PaymentVault
        from ..application.reservation_manager import ReservationManager
        from ..application.slot_registry import SlotRegistry
        from ..application.users import SessionAuthProvider, UserDirectory

        bus, inbox, sinks = self.create_event_bus()
        read_policy = self.create_read_policy()

        audit = AuditLogger(uow_factory, event_bus=bus, clock=self.clock, read_policy=read_policy)
        auth = SessionAuthProvider(uow_factory, audit=audit)
        slots = SlotRegistry(uow_factory, audit=audit, auth=auth, read_policy=read_policy)
        reservations = ReservationManager(
            uow_factory, auth, audit, slots,
            pricing=self.pricing, clock=self.clock, read_policy=read_policy
        )
        vault = PaymentVault(uow_factory, audit, auth=auth, today=lambda: self.clock().date())
        checkout = CheckoutFlow(
            uow_factory, reservations, vault, self.gateway, audit, auth,
            pricing=self.pricing, clock=self.clock
        )
        users = UserDirectory(uow_factory, auth, audit, read_policy=read_policy)
        currency = CurrencyManager(audit=audit, auth=auth, base_currency=self.settings.currency)
        geocoder = NominatimGeocoder(
            base_url=self.settings.geocoder_url,
            country_code=self.settings.geocoder_country,
            min_interval=self.settings.geocoder_min_interval
        )

        return Services(
            settings=self.settings,
            uow_factory=uow_factory,
            event_bus=bus,
            inbox=inbox,
            gateway=self.gateway,
            audit=audit,
            auth=auth,
            slots=slots,
            reservations=reservations,
            vault=vault,
            checkout=checkout,
            users=users,
            currency=currency,
            geocoder=geocoder,
            sinks=sinks
        )

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    @staticmethod
    def seed(services: Services, slot_factory: Optional[ParkingSlotFactory] = None,
             user_factory: Optional[UserFactory] = None) -> Dict[str, int]:
        """Load demo users and slots that are not already present"""
        slot_factory = slot_factory or ParkingSlotFactory(services.settings.currency)
        user_factory = user_factory or UserFactory()
        added = {'users': 0, 'slots': 0}

        with services.uow_factory() as uow:
            for user in user_factory.create_seed_users():
                if uow.users.find_by_email(user.email) is None:
                    uow.users.add(user)
                    added['users'] += 1

            existing = {slot.name for slot in uow.slots.list()}
            for slot in slot_factory.create_seed_slots():
                if slot.name not in existing:
                    uow.slots.add(slot)
                    added['slots'] += 1

        logger.info(f"Seeded {added['users']} users and {added['slots']} slots")
        return added
