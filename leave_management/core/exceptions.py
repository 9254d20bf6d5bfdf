from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_UNAUTHORIZED"
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="AUTH_FORBIDDEN"
        )


class ValidationError(AppException):
    """Field-level validation failure. `fields` maps field name to message."""
    def __init__(
        self,
        message: str = "Validation failed",
        fields: Optional[Dict[str, str]] = None,
        error_code: str = "VALIDATION_ERROR"
    ):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details={"fields": fields} if fields else None
        )


class FileTypeError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="VALIDATION_FILE_TYPE")


class FileSizeError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="VALIDATION_FILE_SIZE")


class NotFoundError(AppException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="DATABASE_NOT_FOUND"
        )


class ConstraintViolationError(AppException):
    def __init__(self, message: str = "Database constraint violated", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code="DATABASE_CONSTRAINT",
            details=details
        )


class BusinessRuleError(AppException):
    def __init__(self, message: str, error_code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class InvalidStatusError(BusinessRuleError):
    def __init__(self, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} a leave request that is {current_status}",
            error_code="BUSINESS_INVALID_STATUS",
            details={"current_status": current_status}
        )


class OverlappingLeaveError(BusinessRuleError):
    def __init__(self, conflicting_ids):
        super().__init__(
            message="Leave request overlaps with an existing pending or approved request",
            error_code="BUSINESS_DUPLICATE_REQUEST",
            details={"conflicting_leave_ids": list(conflicting_ids)}
        )


class InsufficientBalanceError(BusinessRuleError):
    def __init__(self, requested: int, available: int):
        super().__init__(
            message="Insufficient leave balance",
            error_code="BUSINESS_INSUFFICIENT_BALANCE",
            details={"requested_days": requested, "available_days": available}
        )


class StorageError(AppException):
    def __init__(self, message: str, status_code: int = 500, error_code: str = "STORAGE_UPLOAD_FAILED"):
        super().__init__(message=message, status_code=status_code, error_code=error_code)


class StorageQuotaExceededError(StorageError):
    def __init__(self, bucket: str, limit: int):
        super().__init__(
            message=f"File exceeds the {limit} byte limit of bucket '{bucket}'",
            status_code=400,
            error_code="STORAGE_QUOTA_EXCEEDED"
        )


class BucketNotFoundError(StorageError):
    def __init__(self, bucket: str):
        super().__init__(
            message=f"Storage bucket '{bucket}' does not exist",
            status_code=500,
            error_code="STORAGE_BUCKET_NOT_FOUND"
        )


class InvalidReportTypeError(AppException):
    def __init__(self, report_type: str, valid_types):
        super().__init__(
            message=f"Invalid report type: {report_type}",
            status_code=400,
            error_code="INVALID_REPORT_TYPE",
            details={"valid_types": list(valid_types)}
        )
