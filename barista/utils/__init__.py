from .helpers import (
    serialize_mongo_doc,
    public_user,
    success_response,
    error_response,
    parse_object_id,
)
from .logger import Logger

__all__ = [
    "serialize_mongo_doc",
    "public_user",
    "success_response",
    "error_response",
    "parse_object_id",
    "Logger",
]
