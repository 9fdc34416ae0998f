"""
FixMyArea - Request Schemas
Request bodies use camelCase on the wire (assignedTo, shelterName, ...)
"""
import re
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from fixmyarea.models.db_models import (
    ComplaintPriority, ComplaintStatus, DogGender, DogSize, DogStatus, Gender,
    OTPType, SterilizationStatus, UserRole, UserStatus, VaccinationStatus
)

PHONE_PATTERN = re.compile(r"^[0-9]{10}$")
OTP_PATTERN = re.compile(r"^[0-9]{6}$")


def clean_phone(value: str) -> str:
    value = re.sub(r"\s", "", value or "")
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please provide a valid 10-digit phone number")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PhoneModel(CamelModel):
    phone: str

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        return clean_phone(v)

#----------------------------------------------------------
# OTP SCHEMAS

class OTPSendRequest(PhoneModel):
    email: Optional[EmailStr] = None


class OTPResendRequest(OTPSendRequest):
    type: OTPType = OTPType.REGISTRATION


class OTPVerifyRequest(PhoneModel):
    email: Optional[EmailStr] = None
    otp: str
    type: OTPType = OTPType.REGISTRATION

    @field_validator("otp")
    @classmethod
    def _otp(cls, v: str) -> str:
        if not OTP_PATTERN.match(v or ""):
            raise ValueError("OTP must be a 6-digit number")
        return v

#----------------------------------------------------------
# AUTH SCHEMAS

class LocationInput(CamelModel):
    state: str = Field(min_length=1)
    district: str = Field(min_length=1)
    village: str = Field(min_length=1)


class AreaAssignment(CamelModel):
    state: Optional[str] = None
    district: Optional[str] = None
    village: Optional[str] = None


class RegisterRequest(PhoneModel):
    name: str = Field(min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    role: UserRole
    password: Optional[str] = Field(default=None, min_length=6)
    location: LocationInput
    gender: Optional[Gender] = None
    dob: Optional[dt.date] = None
    verification_token: Optional[str] = None


class LoginRequest(PhoneModel):
    password: Optional[str] = None
    otp: Optional[str] = None

#----------------------------------------------------------
# USER SCHEMAS

class UserCreate(PhoneModel):
    name: str = Field(min_length=2, max_length=50)
    role: UserRole
    password: str = Field(min_length=6)
    email: Optional[EmailStr] = None
    gender: Optional[Gender] = None
    dob: Optional[dt.date] = None
    location: LocationInput
    areas_assigned: List[AreaAssignment] = []


class UserUpdate(CamelModel):
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    areas_assigned: Optional[List[AreaAssignment]] = None


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    gender: Optional[Gender] = None
    dob: Optional[dt.date] = None
    location: Optional[LocationInput] = None

#----------------------------------------------------------
# COMPLAINT SCHEMAS

class ComplaintUpdate(CamelModel):
    status: Optional[ComplaintStatus] = None
    assigned_to: Optional[str] = None
    priority: Optional[ComplaintPriority] = None


class CommentCreate(CamelModel):
    text: str = Field(min_length=1, max_length=1000)

#----------------------------------------------------------
# DOG SCHEMAS

class Coordinates(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class DogLocation(LocationInput):
    coordinates: Coordinates
    address: Optional[str] = None


class DogCreate(CamelModel):
    breed: str = Field(min_length=1)
    color: str = Field(min_length=1)
    size: DogSize
    age: int = Field(ge=0, le=25)
    gender: DogGender
    location: DogLocation
    is_aggressive: bool = False
    is_rabid: bool = False
    health_notes: Optional[str] = Field(default=None, max_length=500)


class DogUpdate(CamelModel):
    breed: Optional[str] = None
    color: Optional[str] = None
    size: Optional[DogSize] = None
    age: Optional[int] = Field(default=None, ge=0, le=25)
    gender: Optional[DogGender] = None
    location: Optional[DogLocation] = None
    is_aggressive: Optional[bool] = None
    is_rabid: Optional[bool] = None
    health_notes: Optional[str] = Field(default=None, max_length=500)
    status: Optional[DogStatus] = None


class VaccinationUpdate(CamelModel):
    status: VaccinationStatus
    date: Optional[dt.date] = None


class SterilizationUpdate(CamelModel):
    status: SterilizationStatus
    date: Optional[dt.date] = None


class ShelterTransfer(CamelModel):
    shelter_name: str = Field(min_length=1)
    shelter_address: str = Field(min_length=1)
    reason: str = Field(min_length=1)


class NoteCreate(CamelModel):
    content: str = Field(min_length=1, max_length=1000)


class ComplaintLink(CamelModel):
    complaint_id: str
