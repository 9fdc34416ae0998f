"""
FixMyArea - Response serialization
Plain dicts keyed the way the web client expects (_id, camelCase keys); FastAPI's
encoder takes care of dates.
"""
from typing import Any, Dict, Optional

from fixmyarea.models.db_models import Complaint, DogRecord, User


def _value(enum_member) -> Optional[str]:
    return enum_member.value if enum_member is not None else None


def user_brief(user: Optional[User], *fields: str) -> Optional[Dict[str, Any]]:
    """Populated reference: {_id, <fields>}"""
    if user is None:
        return None
    data: Dict[str, Any] = {"_id": user.id}
    for field in fields:
        value = getattr(user, field)
        data[field] = _value(value) if hasattr(value, "value") else value
    return data


def serialize_user(user: User) -> Dict[str, Any]:
    """Full profile minus the password hash"""
    return {
        "_id": user.id,
        "name": user.name,
        "phone": user.phone,
        "email": user.email,
        "role": _value(user.role),
        "status": _value(user.status),
        "gender": _value(user.gender),
        "dob": user.dob,
        "location": {
            "state": user.state,
            "district": user.district,
            "village": user.village,
        },
        "areasAssigned": user.areas_assigned or [],
        "lastLogin": user.last_login,
        "loginCount": user.login_count,
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }


def serialize_complaint(
    complaint: Complaint,
    resident: Optional[Dict[str, Any]] = None,
    assignee: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "_id": complaint.id,
        "resident": resident or complaint.resident_id,
        "category": _value(complaint.category),
        "description": complaint.description,
        "images": complaint.images or [],
        "location": {
            "lat": complaint.latitude,
            "lng": complaint.longitude,
            "address": complaint.address,
            "state": complaint.state,
            "district": complaint.district,
            "village": complaint.village,
        },
        "status": _value(complaint.status),
        "priority": _value(complaint.priority),
        "assignedTo": assignee or complaint.assigned_to,
        "upvotes": complaint.upvotes,
        "upvoters": complaint.upvoters or [],
        "comments": complaint.comments or [],
        "createdAt": complaint.created_at,
        "updatedAt": complaint.updated_at,
    }


def serialize_dog(dog: DogRecord, assignee: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    shelter_info = None
    if dog.shelter_name is not None:
        shelter_info = {
            "shelterName": dog.shelter_name,
            "shelterAddress": dog.shelter_address,
            "transferDate": dog.transfer_date,
            "transferReason": dog.transfer_reason,
        }
    return {
        "_id": dog.id,
        "dogId": dog.dog_id,
        "breed": dog.breed,
        "color": dog.color,
        "size": _value(dog.size),
        "age": dog.age,
        "ageGroup": age_group(dog.age),
        "gender": _value(dog.gender),
        "vaccinationStatus": _value(dog.vaccination_status),
        "lastVaccinationDate": dog.last_vaccination_date,
        "nextVaccinationDue": dog.next_vaccination_due,
        "sterilizationStatus": _value(dog.sterilization_status),
        "sterilizationDate": dog.sterilization_date,
        "isAggressive": dog.is_aggressive,
        "isRabid": dog.is_rabid,
        "healthNotes": dog.health_notes,
        "location": {
            "state": dog.state,
            "district": dog.district,
            "village": dog.village,
            "coordinates": {"lat": dog.latitude, "lng": dog.longitude},
            "address": dog.address,
        },
        "status": _value(dog.status),
        "shelterInfo": shelter_info,
        "photos": dog.photos or [],
        "firstSeenDate": dog.first_seen_date,
        "lastSeenDate": dog.last_seen_date,
        "assignedTo": assignee or dog.assigned_to,
        "relatedComplaints": dog.related_complaints or [],
        "notes": dog.notes or [],
        "createdAt": dog.created_at,
        "updatedAt": dog.updated_at,
    }


def age_group(age: int) -> str:
    if age < 1:
        return "Puppy"
    if age < 3:
        return "Young"
    if age < 7:
        return "Adult"
    return "Senior"
