from bson import ObjectId
from bson.errors import InvalidId

from livepoll.core.exceptions import NotFoundError


def stringify_id(doc: dict) -> dict:
    """Copy of a Mongo document with `_id` rendered as a string."""
    if doc is None:
        return None
    doc = dict(doc)
    if isinstance(doc.get("_id"), ObjectId):
        doc["_id"] = str(doc["_id"])
    return doc


def ensure_objectid(id_str: str, what: str = "Poll") -> ObjectId:
    # a malformed id cannot name an existing document
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found")
