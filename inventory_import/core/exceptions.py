"""
Centralised error handling for the inventory import service
"""
from abc import ABC
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(Enum):
    """Standardised error codes"""
    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FILE = "INVALID_FILE"
    INVALID_MAPPING = "INVALID_MAPPING"
    CSV_PARSE_ERROR = "CSV_PARSE_ERROR"

    # Business logic errors
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    IMPORT_SESSION_STATE = "IMPORT_SESSION_STATE"

    # Not found errors
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    IMPORT_SESSION_NOT_FOUND = "IMPORT_SESSION_NOT_FOUND"

    # Infrastructure errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    IMPORT_FAILED = "IMPORT_FAILED"


class BaseApplicationException(Exception, ABC):
    """Base exception for the application"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400
    ):
        self.message = message
        self.error_code = error_code.value
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Converts the exception into a dict for the API response"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code
        }


class DomainException(BaseApplicationException):
    """Business domain exceptions"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details, 400)


class ValidationException(DomainException):
    """Validation errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class CSVParseException(ValidationException):
    """The uploaded text could not be turned into a table"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.CSV_PARSE_ERROR, details)


class SessionStateException(BaseApplicationException):
    """
    An import stage was invoked before the artifact it needs exists.

    Raised for programming errors in the caller (out of order calls), never for
    data problems, which are collected into the preview/result instead.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.IMPORT_SESSION_STATE, details, 409)


class NotFoundException(BaseApplicationException):
    """Entity not found"""

    def __init__(
        self,
        entity_type: str,
        entity_id: Any = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: ErrorCode = ErrorCode.ENTITY_NOT_FOUND
    ):
        if entity_id is not None:
            message = f"{entity_type} with id '{entity_id}' not found"
        else:
            message = f"{entity_type} not found"

        error_details = details or {}
        if entity_id is not None:
            error_details["entity_id"] = entity_id
        error_details["entity_type"] = entity_type

        super().__init__(
            message,
            error_code,
            error_details,
            404
        )


class InfrastructureException(BaseApplicationException):
    """Infrastructure errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details, 500)


class ExceptionFactory:
    """Factory for the import-specific exceptions"""

    @staticmethod
    def invalid_file(file_name: str, reasons: List[str]) -> ValidationException:
        return ValidationException(
            f"Archivo inválido: {', '.join(reasons)}",
            ErrorCode.INVALID_FILE,
            {"file_name": file_name, "reasons": reasons}
        )

    @staticmethod
    def invalid_mappings(errors: List[str]) -> ValidationException:
        return ValidationException(
            f"Mapeos inválidos: {', '.join(errors)}",
            ErrorCode.INVALID_MAPPING,
            {"errors": errors}
        )

    @staticmethod
    def import_failed(session_id: str, reason: str) -> InfrastructureException:
        return InfrastructureException(
            f"La importación falló: {reason}",
            ErrorCode.IMPORT_FAILED,
            {"session_id": session_id}
        )

    @staticmethod
    def session_not_found(session_id: str) -> NotFoundException:
        return NotFoundException(
            "ImportSession",
            session_id,
            error_code=ErrorCode.IMPORT_SESSION_NOT_FOUND
        )

    @staticmethod
    def missing_prerequisite(stage: str, missing: str) -> SessionStateException:
        return SessionStateException(
            missing,
            {"stage": stage}
        )
