"""
Serialization utilities for MongoDB objects
Converts ObjectId and datetime to JSON-serializable formats
"""
from bson import ObjectId
from datetime import datetime
from typing import Any, Dict, List

from app.credits.policy import as_utc

# Never leaves the server
PRIVATE_USER_FIELDS = ("passwordHash",)


def serialize_object_id(obj: Any) -> Any:
    """
    Convert MongoDB ObjectId to string recursively
    Datetimes become UTC ISO-8601 strings
    """
    if isinstance(obj, ObjectId):
        return str(obj)
    elif isinstance(obj, datetime):
        return as_utc(obj).isoformat()
    elif isinstance(obj, dict):
        return {key: serialize_object_id(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_object_id(item) for item in obj]
    else:
        return obj


def serialize_user(user: Dict) -> Dict:
    """
    Public view of a user record with credit fields always present
    """
    result = {
        key: value
        for key, value in user.items()
        if key not in PRIVATE_USER_FIELDS and key != "_id"
    }
    result["id"] = str(user["_id"]) if user.get("_id") is not None else ""
    result.setdefault("credits", 0)
    result.setdefault("lastCreditReset", None)
    result.setdefault("dailyCreditResetCount", 0)
    result.setdefault("imagesGenerated", 0)
    result.setdefault("imagesEdited", 0)
    return serialize_object_id(result)


def serialize_entries(entries: List[Dict]) -> List[Dict]:
    return [serialize_object_id(entry) for entry in entries]
