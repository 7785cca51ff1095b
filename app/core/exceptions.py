"""
Domain errors for the booking and payment flows.

Every error is an ``HTTPException`` so services can raise it directly and
FastAPI renders it with the right status code. The response body carries a
stable ``code`` (the class name) next to the human readable message.
"""

from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        self.code = self.__class__.__name__
        super().__init__(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code},
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# Validation

class ValidationError(AppError):
    message = "Invalid request"


class CancellationReasonRequired(ValidationError):
    message = "A cancellation reason is required when cancelling a booking"


# Not found

class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class PackageNotFound(NotFoundError):
    message = "Package not found"


class BookingNotFound(NotFoundError):
    message = "Booking not found"


class PaymentNotFound(NotFoundError):
    message = "Payment not found"


class DeliveryNotFound(NotFoundError):
    message = "Delivery not found"


# State conflicts

class PackageUnavailable(AppError):
    message = "This package is not available"


class CapacityExceeded(AppError):
    message = "This date is fully booked. Please choose another date."


class BookingNotCancellable(AppError):
    message = (
        "This booking cannot be cancelled. It is either completed, "
        "already cancelled, or the date has passed."
    )


class InvalidPaymentState(AppError):
    message = "The booking is not in a state that allows this payment"


class InvalidStatusTransition(AppError):
    status_code = status.HTTP_409_CONFLICT
    message = "This status change is not allowed"


class DeliveryAlreadyExists(AppError):
    status_code = status.HTTP_409_CONFLICT
    message = "Delivery already exists for this booking"


class EmptyDelivery(AppError):
    message = "Please upload at least one photo"


class DeliveryExpired(AppError):
    status_code = status.HTTP_410_GONE
    message = "This delivery has expired"


class DownloadsDisabled(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Downloads are not allowed for this delivery"


# Authorization

class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "You are not authorized to perform this action"


class InvalidWebhookSignature(AppError):
    message = "Webhook signature verification failed"


# External dependencies

class ExternalServiceError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "An external service failed"


class PaymentProcessorError(ExternalServiceError):
    message = "The payment processor could not complete the request"


class AssetUploadFailed(ExternalServiceError):
    message = "Failed to upload photos"
