"""Custom SQLAlchemy types and column defaults shared by all models"""
from datetime import datetime
import uuid

from sqlalchemy import TypeDecorator, String


def generate_uuid():
    """Generate a UUID string"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores"""
    return datetime.utcnow()


class GUID(TypeDecorator):
    """UUID stored as VARCHAR(36) on every backend"""
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return str(value)
        return value
