# File: parkeazy/infrastructure/repositories.py
"""
Repository Pattern Implementation for Park-Eazy

Repositories give the application services a collection-like interface over
slots, reservations, saved payment methods, audit logs and users, while the
Unit of Work groups their writes into one transaction.

Storage Implementations:
- SQLAlchemy repositories - relational storage (SQLite, PostgreSQL, ...)
- In-memory repositories - for unit tests and demos

Both implementations share the same interfaces, so services never know which
one they are talking to.
"""

from abc import ABC, abstractmethod
from typing import (
    Type, TypeVar, Generic, Optional, List, Dict, Any, Callable
)
from datetime import datetime
from decimal import Decimal
import copy
import logging
import threading

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, JSON, UniqueConstraint, func
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import declarative_base, Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from ..domain.exceptions import BackingStoreTimeoutError
from ..domain.models import (
    ParkingSlot, Reservation, User, SystemLog,
    SavedCard, SavedMobileWallet, SavedPaymentMethod,
    SlotStatus, VehicleType, ReservationStatus, PaymentMethodType, UserRole,
    Money, GeoPoint
)

# Type variable for generic repositories
T = TypeVar('T')

# How long an in-memory unit of work waits for the database lock
LOCK_TIMEOUT_SECONDS = 30.0

CommitHook = Callable[[], None]


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class Repository(ABC, Generic[T]):
    """Base repository interface"""

    @abstractmethod
    def add(self, entity: T) -> T:
        """Add an entity to the repository"""
        pass

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Get an entity by ID"""
        pass

    @abstractmethod
    def list(self) -> List[T]:
        """Get all entities"""
        pass


class SlotRepository(Repository[ParkingSlot], ABC):

    @abstractmethod
    def update(self, slot: ParkingSlot) -> bool:
        """Persist an edited slot; False if it does not exist"""
        pass

    @abstractmethod
    def delete(self, id: str) -> bool:
        pass

    @abstractmethod
    def set_status(self, id: str, status: SlotStatus) -> bool:
        pass

    @abstractmethod
    def compare_and_set_status(self, id: str, expected: SlotStatus, new: SlotStatus) -> bool:
        """Change status only if it currently equals expected"""
        pass


class ReservationRepository(Repository[Reservation], ABC):

    @abstractmethod
    def update(self, reservation: Reservation) -> bool:
        pass

    @abstractmethod
    def find_by_user(self, user_id: str) -> List[Reservation]:
        """A user's reservations in creation order"""
        pass

    @abstractmethod
    def find_active_for_slot(self, slot_id: str) -> List[Reservation]:
        pass


class PaymentMethodRepository(Repository[SavedPaymentMethod], ABC):

    @abstractmethod
    def find_by_user(self, user_id: str) -> List[SavedPaymentMethod]:
        pass

    @abstractmethod
    def delete(self, user_id: str, method_id: str) -> bool:
        """Remove a method owned by user_id; False if nothing matched"""
        pass


class SystemLogRepository(ABC):
    """Append-only log storage"""

    @abstractmethod
    def append(self, log: SystemLog) -> SystemLog:
        pass

    @abstractmethod
    def list(self, action_type: Optional[str] = None, limit: Optional[int] = None) -> List[SystemLog]:
        """Entries newest first, optionally filtered by action type"""
        pass

    @abstractmethod
    def action_types(self) -> List[str]:
        pass


class UserRepository(Repository[User], ABC):

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup"""
        pass

    @abstractmethod
    def update(self, user: User) -> bool:
        pass

    @abstractmethod
    def delete(self, id: str) -> bool:
        pass


# ============================================================================
# UNIT OF WORK PATTERN
# ============================================================================

class UnitOfWork(ABC):
    """
    Unit of Work pattern for transaction management

    Commits on a clean exit, rolls back when the block raises. Hooks
    registered with add_commit_hook run only after a successful commit.
    """

    def __init__(self):
        self._commit_hooks: List[CommitHook] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def __enter__(self):
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    @abstractmethod
    def commit(self):
        """Commit the transaction"""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""
        pass

    def add_commit_hook(self, hook: CommitHook) -> None:
        self._commit_hooks.append(hook)

    def _run_commit_hooks(self) -> None:
        hooks, self._commit_hooks = self._commit_hooks, []
        for hook in hooks:
            try:
                hook()
            except Exception as e:
                self._logger.error(f"Post-commit hook {getattr(hook, '__name__', hook)} failed: {e}")

    def _discard_commit_hooks(self) -> None:
        self._commit_hooks = []

    @property
    @abstractmethod
    def slots(self) -> SlotRepository:
        pass

    @property
    @abstractmethod
    def reservations(self) -> ReservationRepository:
        pass

    @property
    @abstractmethod
    def payment_methods(self) -> PaymentMethodRepository:
        pass

    @property
    @abstractmethod
    def system_logs(self) -> SystemLogRepository:
        pass

    @property
    @abstractmethod
    def users(self) -> UserRepository:
        pass


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class ExactDecimal(TypeDecorator):
    """Decimal stored as its string form so amounts round-trip unrounded"""
    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class ParkingSlotModel(Base):
    """SQLAlchemy model for ParkingSlot"""
    __tablename__ = 'parking_slots'

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False)

    # Location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(200))

    # Status
    status = Column(String(20), nullable=False, default='Available', index=True)
    vehicle_type = Column(String(20), nullable=False)

    # Pricing
    price_per_hour_amount = Column(ExactDecimal, nullable=False)
    price_per_hour_currency = Column(String(3), default='BDT')

    features = Column(JSON, default=list)
    operating_hours = Column(String(50), default='24/7')
    rating = Column(Float)
    review_count = Column(Integer)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ReservationModel(Base):
    """SQLAlchemy model for Reservation"""
    __tablename__ = 'reservations'

    id = Column(String(36), primary_key=True)

    # References
    user_id = Column(String(36), nullable=False, index=True)
    slot_id = Column(String(36), nullable=False, index=True)

    # Times
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    # Status
    status = Column(String(20), nullable=False, default='Active', index=True)

    # Pricing
    total_cost_amount = Column(ExactDecimal, nullable=False)
    total_cost_currency = Column(String(3), default='BDT')
    payment_method = Column(String(100))

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SavedPaymentMethodModel(Base):
    """SQLAlchemy model for saved cards and mobile wallets"""
    __tablename__ = 'saved_payment_methods'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    method_type = Column(String(20), nullable=False)

    # Card fields
    cardholder_name = Column(String(100))
    last4 = Column(String(4))
    expiry_date = Column(String(5))

    # Mobile wallet fields
    account_number = Column(String(11))

    created_at = Column(DateTime, default=datetime.utcnow)


class SystemLogModel(Base):
    """SQLAlchemy model for SystemLog"""
    __tablename__ = 'system_logs'

    id = Column(String(36), primary_key=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    actor_id = Column(String(36), nullable=False)
    actor_role = Column(String(20), nullable=False)
    action_type = Column(String(50), nullable=False, index=True)
    details = Column(Text, nullable=False)
    log_metadata = Column('metadata', JSON, default=dict)


class UserModel(Base):
    """SQLAlchemy model for User"""
    __tablename__ = 'user_profiles'

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False, index=True)
    role = Column(String(20), nullable=False, default='user')

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('email', name='uq_user_email'),
    )


# ============================================================================
# DOMAIN <-> ORM MAPPERS
# ============================================================================

class Mapper:
    """Maps between domain models and ORM models"""

    @staticmethod
    def parking_slot_to_orm(slot: ParkingSlot) -> ParkingSlotModel:
        return ParkingSlotModel(
            id=slot.id,
            name=slot.name,
            latitude=slot.location.latitude,
            longitude=slot.location.longitude,
            address=slot.address,
            status=slot.status.value,
            vehicle_type=slot.vehicle_type.value,
            price_per_hour_amount=slot.price_per_hour.amount,
            price_per_hour_currency=slot.price_per_hour.currency,
            features=sorted(slot.features),
            operating_hours=slot.operating_hours,
            rating=slot.rating,
            review_count=slot.review_count
        )

    @staticmethod
    def parking_slot_to_domain(model: ParkingSlotModel) -> ParkingSlot:
        return ParkingSlot(
            id=model.id,
            name=model.name,
            location=GeoPoint(model.latitude, model.longitude),
            address=model.address,
            status=SlotStatus(model.status),
            vehicle_type=VehicleType(model.vehicle_type),
            price_per_hour=Money(
                amount=Decimal(str(model.price_per_hour_amount)),
                currency=model.price_per_hour_currency
            ),
            features=model.features or [],
            operating_hours=model.operating_hours,
            rating=model.rating,
            review_count=model.review_count
        )

    @staticmethod
    def reservation_to_orm(reservation: Reservation) -> ReservationModel:
        return ReservationModel(
            id=reservation.id,
            user_id=reservation.user_id,
            slot_id=reservation.slot_id,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            status=reservation.status.value,
            total_cost_amount=reservation.total_cost.amount,
            total_cost_currency=reservation.total_cost.currency,
            payment_method=reservation.payment_method,
            created_at=reservation.created_at
        )

    @staticmethod
    def reservation_to_domain(model: ReservationModel) -> Reservation:
        return Reservation(
            id=model.id,
            user_id=model.user_id,
            slot_id=model.slot_id,
            start_time=model.start_time,
            end_time=model.end_time,
            status=ReservationStatus(model.status),
            total_cost=Money(
                amount=Decimal(str(model.total_cost_amount)),
                currency=model.total_cost_currency
            ),
            payment_method=model.payment_method,
            created_at=model.created_at
        )

    @staticmethod
    def payment_method_to_orm(method: SavedPaymentMethod) -> SavedPaymentMethodModel:
        if isinstance(method, SavedCard):
            return SavedPaymentMethodModel(
                id=method.id,
                user_id=method.user_id,
                method_type=method.type.value,
                cardholder_name=method.cardholder_name,
                last4=method.last4,
                expiry_date=method.expiry_date
            )
        if isinstance(method, SavedMobileWallet):
            return SavedPaymentMethodModel(
                id=method.id,
                user_id=method.user_id,
                method_type=method.type.value,
                account_number=method.account_number
            )
        raise TypeError(f"Unknown payment method variant: {type(method).__name__}")

    @staticmethod
    def payment_method_to_domain(model: SavedPaymentMethodModel) -> SavedPaymentMethod:
        method_type = PaymentMethodType(model.method_type)
        if method_type == PaymentMethodType.CARD:
            return SavedCard(
                id=model.id,
                user_id=model.user_id,
                cardholder_name=model.cardholder_name,
                last4=model.last4,
                expiry_date=model.expiry_date
            )
        return SavedMobileWallet(
            id=model.id,
            user_id=model.user_id,
            type=method_type,
            account_number=model.account_number
        )

    @staticmethod
    def system_log_to_orm(log: SystemLog) -> SystemLogModel:
        return SystemLogModel(
            id=log.id,
            timestamp=log.timestamp,
            actor_id=log.actor_id,
            actor_role=UserRole(log.actor_role).value,
            action_type=log.action_type,
            details=log.details,
            log_metadata=dict(log.metadata)
        )

    @staticmethod
    def system_log_to_domain(model: SystemLogModel) -> SystemLog:
        return SystemLog(
            id=model.id,
            timestamp=model.timestamp,
            actor_id=model.actor_id,
            actor_role=UserRole(model.actor_role),
            action_type=model.action_type,
            details=model.details,
            metadata=model.log_metadata or {}
        )

    @staticmethod
    def user_to_orm(user: User) -> UserModel:
        return UserModel(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value
        )

    @staticmethod
    def user_to_domain(model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            email=model.email,
            role=UserRole(model.role)
        )


# ============================================================================
# SQLALCHEMY REPOSITORIES
# ============================================================================

class SQLAlchemyRepository(Repository[T], ABC):
    """Base SQLAlchemy repository"""

    # Columns never overwritten on update
    immutable_columns = ('id', 'created_at', 'updated_at')

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def model_class(self) -> Type[Base]:
        """Return SQLAlchemy model class"""
        pass

    @abstractmethod
    def to_domain(self, model: Base) -> T:
        """Convert ORM model to domain model"""
        pass

    @abstractmethod
    def to_orm(self, entity: T) -> Base:
        """Convert domain model to ORM model"""
        pass

    def add(self, entity: T) -> T:
        try:
            model = self.to_orm(entity)
            self.session.add(model)
            self.session.flush()
            self._logger.debug(f"Added entity: {model.id}")
            return entity
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error adding entity: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error adding entity: {e}")
            raise

    def get(self, id: str) -> Optional[T]:
        try:
            model = self.session.get(self.model_class, str(id))
            if model:
                return self.to_domain(model)
            return None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting entity {id}: {e}")
            raise

    def list(self) -> List[T]:
        try:
            models = self.session.query(self.model_class).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting all entities: {e}")
            raise

    def update(self, entity: T) -> bool:
        try:
            entity_id = getattr(entity, 'id')
            model = self.session.get(self.model_class, str(entity_id))
            if not model:
                return False

            updated_model = self.to_orm(entity)

            # Copy updated fields to existing model
            for attribute in sa_inspect(self.model_class).column_attrs:
                if attribute.key in self.immutable_columns:
                    continue
                setattr(model, attribute.key, getattr(updated_model, attribute.key))

            self.session.flush()
            self._logger.debug(f"Updated entity: {entity_id}")
            return True
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error updating entity: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error updating entity: {e}")
            raise

    def _delete_where(self, *criteria) -> bool:
        try:
            deleted = self.session.query(self.model_class).filter(*criteria).delete(
                synchronize_session=False
            )
            self.session.flush()
            return deleted > 0
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error deleting from {self.model_class.__tablename__}: {e}")
            raise


class SQLAlchemySlotRepository(SQLAlchemyRepository[ParkingSlot], SlotRepository):
    """Repository for parking slots"""

    @property
    def model_class(self) -> Type[Base]:
        return ParkingSlotModel

    def to_domain(self, model: ParkingSlotModel) -> ParkingSlot:
        return Mapper.parking_slot_to_domain(model)

    def to_orm(self, entity: ParkingSlot) -> ParkingSlotModel:
        return Mapper.parking_slot_to_orm(entity)

    def list(self) -> List[ParkingSlot]:
        try:
            models = self.session.query(ParkingSlotModel).order_by(
                ParkingSlotModel.created_at.asc(), ParkingSlotModel.name.asc()
            ).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing slots: {e}")
            raise

    def delete(self, id: str) -> bool:
        return self._delete_where(ParkingSlotModel.id == str(id))

    def set_status(self, id: str, status: SlotStatus) -> bool:
        return self._update_status(ParkingSlotModel.id == str(id), status)

    def compare_and_set_status(self, id: str, expected: SlotStatus, new: SlotStatus) -> bool:
        return self._update_status(
            ParkingSlotModel.id == str(id),
            status=new,
            extra_criteria=(ParkingSlotModel.status == SlotStatus(expected).value,)
        )

    def _update_status(self, id_criterion, status: SlotStatus, extra_criteria=()) -> bool:
        try:
            result = self.session.query(ParkingSlotModel).filter(
                id_criterion, *extra_criteria
            ).update({
                'status': SlotStatus(status).value,
                'updated_at': datetime.utcnow()
            }, synchronize_session='fetch')

            self.session.flush()
            return result > 0
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error updating slot status: {e}")
            raise


class SQLAlchemyReservationRepository(SQLAlchemyRepository[Reservation], ReservationRepository):
    """Repository for reservations"""

    @property
    def model_class(self) -> Type[Base]:
        return ReservationModel

    def to_domain(self, model: ReservationModel) -> Reservation:
        return Mapper.reservation_to_domain(model)

    def to_orm(self, entity: Reservation) -> ReservationModel:
        return Mapper.reservation_to_orm(entity)

    def list(self) -> List[Reservation]:
        try:
            models = self.session.query(ReservationModel).order_by(
                ReservationModel.created_at.asc()
            ).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing reservations: {e}")
            raise

    def find_by_user(self, user_id: str) -> List[Reservation]:
        try:
            models = self.session.query(ReservationModel).filter(
                ReservationModel.user_id == str(user_id)
            ).order_by(ReservationModel.created_at.asc()).all()

            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding reservations by user: {e}")
            raise

    def find_active_for_slot(self, slot_id: str) -> List[Reservation]:
        try:
            models = self.session.query(ReservationModel).filter(
                ReservationModel.slot_id == str(slot_id),
                ReservationModel.status == ReservationStatus.ACTIVE.value
            ).all()

            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding active reservations for slot: {e}")
            raise


class SQLAlchemyPaymentMethodRepository(SQLAlchemyRepository[SavedPaymentMethod], PaymentMethodRepository):
    """Repository for saved payment methods"""

    @property
    def model_class(self) -> Type[Base]:
        return SavedPaymentMethodModel

    def to_domain(self, model: SavedPaymentMethodModel) -> SavedPaymentMethod:
        return Mapper.payment_method_to_domain(model)

    def to_orm(self, entity: SavedPaymentMethod) -> SavedPaymentMethodModel:
        return Mapper.payment_method_to_orm(entity)

    def find_by_user(self, user_id: str) -> List[SavedPaymentMethod]:
        try:
            models = self.session.query(SavedPaymentMethodModel).filter(
                SavedPaymentMethodModel.user_id == str(user_id)
            ).order_by(SavedPaymentMethodModel.created_at.asc()).all()

            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding payment methods by user: {e}")
            raise

    def delete(self, user_id: str, method_id: str) -> bool:
        return self._delete_where(
            SavedPaymentMethodModel.id == str(method_id),
            SavedPaymentMethodModel.user_id == str(user_id)
        )


class SQLAlchemySystemLogRepository(SystemLogRepository):
    """Append-only repository for system logs"""

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    def append(self, log: SystemLog) -> SystemLog:
        try:
            self.session.add(Mapper.system_log_to_orm(log))
            self.session.flush()
            self._logger.debug(f"Appended log {log.id} ({log.action_type})")
            return log
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error appending log: {e}")
            raise

    def list(self, action_type: Optional[str] = None, limit: Optional[int] = None) -> List[SystemLog]:
        try:
            query = self.session.query(SystemLogModel)
            if action_type:
                query = query.filter(SystemLogModel.action_type == action_type)

            query = query.order_by(SystemLogModel.timestamp.desc())
            if limit:
                query = query.limit(limit)

            return [Mapper.system_log_to_domain(model) for model in query.all()]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing logs: {e}")
            raise

    def action_types(self) -> List[str]:
        try:
            rows = self.session.query(SystemLogModel.action_type).distinct().all()
            return sorted(row[0] for row in rows)
        except SQLAlchemyError as e:
            self._logger.error(f"Database error listing log action types: {e}")
            raise


class SQLAlchemyUserRepository(SQLAlchemyRepository[User], UserRepository):
    """Repository for user profiles"""

    @property
    def model_class(self) -> Type[Base]:
        return UserModel

    def to_domain(self, model: UserModel) -> User:
        return Mapper.user_to_domain(model)

    def to_orm(self, entity: User) -> UserModel:
        return Mapper.user_to_orm(entity)

    def find_by_email(self, email: str) -> Optional[User]:
        try:
            model = self.session.query(UserModel).filter(
                func.lower(UserModel.email) == email.strip().lower()
            ).first()

            if model:
                return self.to_domain(model)
            return None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding user by email: {e}")
            raise

    def delete(self, id: str) -> bool:
        return self._delete_where(UserModel.id == str(id))


# ============================================================================
# SQLALCHEMY UNIT OF WORK
# ============================================================================

class SQLAlchemyUnitOfWork(UnitOfWork):
    """Unit of Work implementation with SQLAlchemy"""

    def __init__(self, session_factory: Callable[[], Session]):
        super().__init__()
        self.session_factory = session_factory

    def __enter__(self):
        self.session = self.session_factory()

        # Initialize repositories
        self._slots = SQLAlchemySlotRepository(self.session)
        self._reservations = SQLAlchemyReservationRepository(self.session)
        self._payment_methods = SQLAlchemyPaymentMethodRepository(self.session)
        self._system_logs = SQLAlchemySystemLogRepository(self.session)
        self._users = SQLAlchemyUserRepository(self.session)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self._logger.error(f"Exception in unit of work: {exc_val}")
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()

        if exc_type is None:
            self._run_commit_hooks()

    def commit(self):
        """Commit the transaction"""
        try:
            self.session.commit()
            self._logger.debug("Transaction committed")
        except SQLAlchemyError as e:
            self._logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            self._discard_commit_hooks()
            raise

    def rollback(self):
        """Rollback the transaction"""
        self.session.rollback()
        self._discard_commit_hooks()
        self._logger.debug("Transaction rolled back")

    @property
    def slots(self) -> SQLAlchemySlotRepository:
        return self._slots

    @property
    def reservations(self) -> SQLAlchemyReservationRepository:
        return self._reservations

    @property
    def payment_methods(self) -> SQLAlchemyPaymentMethodRepository:
        return self._payment_methods

    @property
    def system_logs(self) -> SQLAlchemySystemLogRepository:
        return self._system_logs

    @property
    def users(self) -> SQLAlchemyUserRepository:
        return self._users


# ============================================================================
# IN-MEMORY REPOSITORIES (For Testing)
# ============================================================================

class InMemoryDatabase:
    """
    Process-local backing store shared by in-memory units of work

    Entities are copied on the way in and out so callers never hold a
    reference into the store.
    """

    def __init__(self):
        self.slots: Dict[str, ParkingSlot] = {}
        self.reservations: Dict[str, Reservation] = {}
        self.payment_methods: Dict[str, SavedPaymentMethod] = {}
        self.system_logs: List[SystemLog] = []
        self.users: Dict[str, User] = {}
        self.lock = threading.RLock()

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy({
            'slots': self.slots,
            'reservations': self.reservations,
            'payment_methods': self.payment_methods,
            'system_logs': self.system_logs,
            'users': self.users
        })

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.slots = snapshot['slots']
        self.reservations = snapshot['reservations']
        self.payment_methods = snapshot['payment_methods']
        self.system_logs = snapshot['system_logs']
        self.users = snapshot['users']

    def clear(self):
        """Clear all data (for testing)"""
        self.restore({
            'slots': {}, 'reservations': {}, 'payment_methods': {},
            'system_logs': [], 'users': {}
        })


class InMemoryRepository(Repository[T]):
    """In-memory repository for testing"""

    def __init__(self, db: InMemoryDatabase, table: str):
        self._db = db
        self._table = table
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def _storage(self) -> Dict[str, T]:
        return getattr(self._db, self._table)

    def add(self, entity: T) -> T:
        if entity.id in self._storage:
            raise KeyError(f"Entity {entity.id} already exists")
        self._storage[entity.id] = copy.deepcopy(entity)
        self._logger.debug(f"Added entity {entity.id}")
        return entity

    def get(self, id: str) -> Optional[T]:
        return copy.deepcopy(self._storage.get(id))

    def list(self) -> List[T]:
        return [copy.deepcopy(entity) for entity in self._storage.values()]

    def update(self, entity: T) -> bool:
        if entity.id not in self._storage:
            return False
        self._storage[entity.id] = copy.deepcopy(entity)
        self._logger.debug(f"Updated entity {entity.id}")
        return True

    def delete(self, id: str) -> bool:
        if id in self._storage:
            del self._storage[id]
            self._logger.debug(f"Deleted entity {id}")
            return True
        return False


class InMemorySlotRepository(InMemoryRepository[ParkingSlot], SlotRepository):

    def __init__(self, db: InMemoryDatabase):
        super().__init__(db, 'slots')

    def set_status(self, id: str, status: SlotStatus) -> bool:
        slot = self._storage.get(id)
        if slot is None:
            return False
        slot.status = SlotStatus(status)
        return True

    def compare_and_set_status(self, id: str, expected: SlotStatus, new: SlotStatus) -> bool:
        slot = self._storage.get(id)
        if slot is None or slot.status != SlotStatus(expected):
            return False
        slot.status = SlotStatus(new)
        return True


class InMemoryReservationRepository(InMemoryRepository[Reservation], ReservationRepository):

    def __init__(self, db: InMemoryDatabase):
        super().__init__(db, 'reservations')

    def list(self) -> List[Reservation]:
        return sorted(super().list(), key=lambda r: r.created_at)

    def find_by_user(self, user_id: str) -> List[Reservation]:
        return [r for r in self.list() if r.user_id == user_id]

    def find_active_for_slot(self, slot_id: str) -> List[Reservation]:
        return [r for r in self.list() if r.slot_id == slot_id and r.is_active]


class InMemoryPaymentMethodRepository(InMemoryRepository[SavedPaymentMethod], PaymentMethodRepository):

    def __init__(self, db: InMemoryDatabase):
        super().__init__(db, 'payment_methods')

    def find_by_user(self, user_id: str) -> List[SavedPaymentMethod]:
        return [m for m in self.list() if m.user_id == user_id]

    def delete(self, user_id: str, method_id: str) -> bool:
        method = self._storage.get(method_id)
        if method is None or method.user_id != user_id:
            return False
        del self._storage[method_id]
        return True


class InMemorySystemLogRepository(SystemLogRepository):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    def append(self, log: SystemLog) -> SystemLog:
        self._db.system_logs.append(log)
        return log

    def list(self, action_type: Optional[str] = None, limit: Optional[int] = None) -> List[SystemLog]:
        logs = [log for log in self._db.system_logs if not action_type or log.action_type == action_type]
        logs = sorted(logs, key=lambda log: log.timestamp, reverse=True)
        return logs[:limit] if limit else logs

    def action_types(self) -> List[str]:
        return sorted({log.action_type for log in self._db.system_logs})


class InMemoryUserRepository(InMemoryRepository[User], UserRepository):

    def __init__(self, db: InMemoryDatabase):
        super().__init__(db, 'users')

    def add(self, entity: User) -> User:
        if self.find_by_email(entity.email):
            raise KeyError(f"Email {entity.email} already registered")
        return super().add(entity)

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        for user in self._storage.values():
            if user.email.lower() == wanted:
                return copy.deepcopy(user)
        return None


class InMemoryUnitOfWork(UnitOfWork):
    """
    Unit of Work over an InMemoryDatabase

    Holds the database lock for the whole block and restores a snapshot on
    rollback. Entering gives up with BackingStoreTimeoutError when the lock
    stays held for longer than lock_timeout, e.g. by a read that timed out
    and was abandoned still running.
    """

    def __init__(self, db: Optional[InMemoryDatabase] = None, lock_timeout: float = LOCK_TIMEOUT_SECONDS):
        super().__init__()
        self.db = db or InMemoryDatabase()
        self.lock_timeout = lock_timeout
        self._snapshot: Optional[Dict[str, Any]] = None

        self._slots = InMemorySlotRepository(self.db)
        self._reservations = InMemoryReservationRepository(self.db)
        self._payment_methods = InMemoryPaymentMethodRepository(self.db)
        self._system_logs = InMemorySystemLogRepository(self.db)
        self._users = InMemoryUserRepository(self.db)

    def __enter__(self):
        if not self.db.lock.acquire(timeout=self.lock_timeout):
            raise BackingStoreTimeoutError(f"In-memory store stayed locked for {self.lock_timeout:.1f}s")
        self._snapshot = self.db.snapshot()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self._logger.error(f"Exception in unit of work: {exc_val}")
                self.rollback()
            else:
                self.commit()
        finally:
            self.db.lock.release()

        if exc_type is None:
            self._run_commit_hooks()

    def commit(self):
        self._snapshot = None
        self._logger.debug("Transaction committed")

    def rollback(self):
        if self._snapshot is not None:
            self.db.restore(self._snapshot)
            self._snapshot = None
        self._discard_commit_hooks()
        self._logger.debug("Transaction rolled back")

    @property
    def slots(self) -> InMemorySlotRepository:
        return self._slots

    @property
    def reservations(self) -> InMemoryReservationRepository:
        return self._reservations

    @property
    def payment_methods(self) -> InMemoryPaymentMethodRepository:
        return self._payment_methods

    @property
    def system_logs(self) -> InMemorySystemLogRepository:
        return self._system_logs

    @property
    def users(self) -> InMemoryUserRepository:
        return self._users
