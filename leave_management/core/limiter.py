import hashlib

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from leave_management.core.config import settings


def rate_limit_key(request: Request) -> str:
    """Per-caller buckets: the bearer token when present, else the client address."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return "token:" + hashlib.sha256(auth_header[7:].encode()).hexdigest()
    return "ip:" + get_remote_address(request)


limiter = Limiter(key_func=rate_limit_key, enabled=settings.rate_limits.enabled)

# Named limits, one per operation class
LEAVE_CREATION_LIMIT = settings.rate_limits.leave_creation
LEAVE_APPROVAL_LIMIT = settings.rate_limits.leave_approval
READ_LIMIT = settings.rate_limits.read_operations
DOCUMENT_UPLOAD_LIMIT = settings.rate_limits.document_upload
ADMIN_LIMIT = settings.rate_limits.admin_operations
