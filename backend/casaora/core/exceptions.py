# backend/casaora/core/exceptions.py
"""
Domain-specific exceptions for the Casaora platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Check-out workflow


class CheckOutError(DomainException):
    """Base for failures surfaced by the check-out workflow."""

    error_class: str = "internal"
    generic_message: Optional[str] = "Unable to complete check-out"

    def public_message(self) -> str:
        """Message safe to show the professional who triggered the check-out."""
        return self.generic_message or self.message


class CheckOutValidationException(ValidationException, CheckOutError):
    """A check-out precondition was not met; booking state is unchanged."""

    error_class = "validation"
    generic_message = None


class BookingNotFoundException(NotFoundException, CheckOutError):
    error_class = "not_found"
    generic_message = None

    def __init__(self, booking_id: str):
        super().__init__(
            message="Booking not found",
            code="BOOKING_NOT_FOUND",
            details={"booking_id": booking_id},
        )


class PaymentCaptureException(ServiceException, CheckOutError):
    """The processor declined or failed the capture; no money moved."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_class = "capture_failed"
    generic_message = "Failed to capture payment"

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        processor_code: Optional[str] = None,
    ):
        super().__init__(message=message, code="PAYMENT_CAPTURE_FAILED", details=details)
        self.processor_code = processor_code


class CapturedPaymentNotPersistedException(ServiceException, CheckOutError):
    """
    Payment was captured but the booking could not be marked complete.

    Operators are alerted separately; callers only see a failed check-out.
    """

    error_class = "critical_persistence"

    def __init__(self, booking_id: str, *, amount_captured: int, attempts: int):
        super().__init__(
            message="Payment captured but booking update failed",
            code="CAPTURED_PAYMENT_NOT_PERSISTED",
            details={
                "booking_id": booking_id,
                "amount_captured": amount_captured,
                "attempts": attempts,
            },
        )
        self.booking_id = booking_id
        self.amount_captured = amount_captured
        self.attempts = attempts


# Webhooks


class WebhookVerificationException(ValidationException):
    """Inbound webhook rejected at the boundary (never persisted)."""

    def __init__(self, reason: str, message: str):
        super().__init__(message=message, code="WEBHOOK_REJECTED", details={"reason": reason})
        self.reason = reason


class WebhookProcessingException(ServiceException):
    """Applying a verified event failed; the delivery was rolled back for redelivery."""

    def __init__(self, event_id: str, event_type: str):
        super().__init__(
            message="Webhook processing failed",
            code="WEBHOOK_PROCESSING_FAILED",
            details={"event_id": event_id, "event_type": event_type},
        )
        self.event_id = event_id
        self.event_type = event_type


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
