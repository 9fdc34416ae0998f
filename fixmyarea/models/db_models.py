"""
FixMyArea - SQLAlchemy Database Models
Users, OTP records, complaints, dog records and the location catalog
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, Text, Float,
    ForeignKey, Enum as SQLEnum, JSON, UniqueConstraint, Index
)
from fixmyarea.database import Base
from fixmyarea.utils.clock import utcnow
import uuid
import enum


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls, **kwargs):
    """Store enum values (not names) as portable VARCHAR"""
    return Column(
        SQLEnum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            length=32,
        ),
        **kwargs,
    )


# ==================== ENUMS ====================

class UserRole(str, enum.Enum):
    RESIDENT = "resident"
    STAFF = "staff"
    ADMIN = "admin"

class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"

class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"

class OTPType(str, enum.Enum):
    REGISTRATION = "registration"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"

class ComplaintCategory(str, enum.Enum):
    STRAY_DOGS = "stray_dogs"
    INJURED_DOGS = "injured_dogs"
    RABID_DOGS = "rabid_dogs"
    DOG_BITE = "dog_bite"
    GARBAGE = "garbage"
    WATER = "water"
    ROADS = "roads"
    POWER = "power"
    OTHER = "other"

class ComplaintStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"

class ComplaintPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

class DogSize(str, enum.Enum):
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"

class DogGender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"

class VaccinationStatus(str, enum.Enum):
    NOT_VACCINATED = "Not Vaccinated"
    PARTIALLY_VACCINATED = "Partially Vaccinated"
    FULLY_VACCINATED = "Fully Vaccinated"

class SterilizationStatus(str, enum.Enum):
    NOT_STERILIZED = "Not Sterilized"
    STERILIZED = "Sterilized"

class DogStatus(str, enum.Enum):
    ACTIVE = "Active"
    TRANSFERRED_TO_SHELTER = "Transferred to Shelter"
    ADOPTED = "Adopted"
    DECEASED = "Deceased"
    LOST = "Lost"

# ==================== USER MODEL ====================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    role = _enum_column(UserRole, nullable=False, index=True)
    name = Column(String(50), nullable=False)
    phone = Column(String(10), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    gender = _enum_column(Gender, nullable=True)
    dob = Column(Date, nullable=True)

    # Location
    state = Column(String(100), nullable=False, index=True)
    district = Column(String(100), nullable=False, index=True)
    village = Column(String(100), nullable=False, index=True)
    areas_assigned = Column(JSON, nullable=False, default=list)  # [{state, district, village}]

    password_hash = Column(String(255), nullable=False)
    status = _enum_column(UserStatus, nullable=False, default=UserStatus.ACTIVE, index=True)
    last_login = Column(DateTime, nullable=True)
    login_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_users_role_status", "role", "status"),
    )

# ==================== OTP RECORD MODEL ====================

class OTPRecord(Base):
    __tablename__ = "otp_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), nullable=False, index=True)
    email = Column(String(255), nullable=True, index=True)
    code = Column(String(6), nullable=False)
    type = _enum_column(OTPType, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_otp_phone_type_created", "phone", "type", "created_at"),
        Index("ix_otp_email_type_created", "email", "type", "created_at"),
    )

    def is_expired(self, now) -> bool:
        return now >= self.expires_at

    def can_use(self, now) -> bool:
        return not self.is_used and not self.is_expired(now) and self.attempts < self.max_attempts


class OTPSendEvent(Base):
    """One row per OTP issued; survives replacement of the OTP itself"""

    __tablename__ = "otp_send_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=True)
    type = _enum_column(OTPType, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_otp_events_phone_type_created", "phone", "type", "created_at"),
        Index("ix_otp_events_email_type_created", "email", "type", "created_at"),
    )

# ==================== COMPLAINT MODEL ====================

class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(String(36), primary_key=True, default=_new_id)
    resident_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    category = _enum_column(ComplaintCategory, nullable=False)
    description = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)  # List of image URLs

    # Location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, nullable=True)
    state = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    village = Column(String(100), nullable=True)

    status = _enum_column(ComplaintStatus, nullable=False, default=ComplaintStatus.PENDING, index=True)
    priority = _enum_column(ComplaintPriority, nullable=False, default=ComplaintPriority.MEDIUM)
    assigned_to = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    upvotes = Column(Integer, nullable=False, default=0)
    upvoters = Column(JSON, nullable=False, default=list)  # user ids
    comments = Column(JSON, nullable=False, default=list)  # [{author, text, createdAt}]

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

# ==================== DOG RECORD MODEL ====================

class DogRecord(Base):
    __tablename__ = "dog_records"

    id = Column(String(36), primary_key=True, default=_new_id)
    dog_id = Column(String(12), unique=True, index=True, nullable=False)

    # Physical description
    breed = Column(String(100), nullable=False)
    color = Column(String(100), nullable=False)
    size = _enum_column(DogSize, nullable=False)
    age = Column(Integer, nullable=False)
    gender = _enum_column(DogGender, nullable=False)

    # Health
    vaccination_status = _enum_column(
        VaccinationStatus, nullable=False, default=VaccinationStatus.NOT_VACCINATED
    )
    last_vaccination_date = Column(Date, nullable=True)
    next_vaccination_due = Column(Date, nullable=True, index=True)
    sterilization_status = _enum_column(
        SterilizationStatus, nullable=False, default=SterilizationStatus.NOT_STERILIZED
    )
    sterilization_date = Column(Date, nullable=True)
    is_aggressive = Column(Boolean, nullable=False, default=False)
    is_rabid = Column(Boolean, nullable=False, default=False)
    health_notes = Column(String(500), nullable=True)

    # Location
    state = Column(String(100), nullable=False)
    district = Column(String(100), nullable=False)
    village = Column(String(100), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, nullable=True)

    status = _enum_column(DogStatus, nullable=False, default=DogStatus.ACTIVE)

    # Shelter transfer, written together with status
    shelter_name = Column(String(255), nullable=True)
    shelter_address = Column(Text, nullable=True)
    transfer_date = Column(DateTime, nullable=True)
    transfer_reason = Column(Text, nullable=True)

    photos = Column(JSON, nullable=False, default=list)  # [{url, caption, uploadedAt}]
    first_seen_date = Column(DateTime, nullable=False, default=utcnow)
    last_seen_date = Column(DateTime, nullable=False, default=utcnow)

    assigned_to = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    related_complaints = Column(JSON, nullable=False, default=list)  # complaint ids
    notes = Column(JSON, nullable=False, default=list)  # [{content, author, createdAt}]

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("ix_dogs_status_assigned", "status", "assigned_to"),
        Index("ix_dogs_location", "state", "district", "village"),
        Index("ix_dogs_health", "vaccination_status", "sterilization_status"),
    )

# ==================== SEQUENCES ====================

class Counter(Base):
    """Named monotonically increasing sequence (dog ids)"""

    __tablename__ = "counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)

# ==================== LOCATION CATALOG (Static Data) ====================

class LocationCatalog(Base):
    __tablename__ = "location_catalog"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state = Column(String(100), nullable=False)
    district = Column(String(100), nullable=False)
    village = Column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("state", "district", "village", name="uq_location"),
    )
