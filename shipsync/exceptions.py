"""
Error taxonomy for the sync core.

Provider-facing failures reach callers as ProviderUnavailable or
ProviderRejected; ProtocolError is raised by the envelope codec and wrapped by
the synchronizer.
"""
from typing import Any, Dict, Optional


class ShipmentSyncError(Exception):
    """Base exception for the sync core."""

    def __init__(self, message: str, error_code: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class ProtocolError(ShipmentSyncError):
    """SOAP envelope could not be parsed or has no recognizable response node."""

    def __init__(self, message: str = "Unexpected ECCANG response payload", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="ERR_PROTOCOL", details=details)


class ProviderUnavailable(ShipmentSyncError):
    """Transport failure, timeout, unreadable response or missing configuration."""

    def __init__(self, message: str = "Unable to reach ECCANG service", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="ERR_PROVIDER_UNAVAILABLE", details=details)


class ProviderNotConfigured(ProviderUnavailable):
    """Service URL, app token or app key is missing."""

    def __init__(self, message: str = "ECCANG credentials are not configured"):
        super().__init__(message=message)
        self.error_code = "ERR_PROVIDER_NOT_CONFIGURED"


class ProviderRejected(ShipmentSyncError):
    """Call went through but the provider's acknowledgement flag says it failed."""

    def __init__(self, message: str, operation: str, response: Any = None):
        super().__init__(
            message=message,
            error_code="ERR_PROVIDER_REJECTED",
            details={"operation": operation},
        )
        self.operation = operation
        self.response = response


class ShipmentNotFound(ShipmentSyncError):
    def __init__(self, shipment_id: Any):
        super().__init__(
            message=f"Shipment with ID {shipment_id} not found",
            error_code="ERR_NOT_FOUND",
            details={"id": shipment_id},
        )


class ShipmentConflict(ShipmentSyncError):
    def __init__(self, reference_no: str):
        super().__init__(
            message="A shipment with this reference already exists",
            error_code="ERR_CONFLICT",
            details={"reference_no": reference_no},
        )
