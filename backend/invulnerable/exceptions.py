"""Exception taxonomy for the vulnerability lifecycle engine."""


class InvulnerableError(Exception):
    """Base class for all domain errors."""


class NotFoundError(InvulnerableError):
    """A scan, vulnerability or other record does not exist."""

    def __init__(self, resource: str, identifier: object):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class ValidationError(InvulnerableError):
    """Input failed validation (e.g. an unrecognized status value)."""


class CrossImageError(InvulnerableError):
    """An explicit previous scan belongs to a different image than the current scan."""

    def __init__(self, scan_id: int, previous_scan_id: int):
        self.scan_id = scan_id
        self.previous_scan_id = previous_scan_id
        super().__init__(
            f"previous scan {previous_scan_id} is for a different image than scan {scan_id}"
        )


class DeliveryError(InvulnerableError):
    """Webhook POST failed at the transport level or returned a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class AuditWriteError(InvulnerableError):
    """Writing a history row failed. Never escalated past the status tracker."""

    def __init__(self, vulnerability_id: int, field_name: str, cause: Exception):
        self.vulnerability_id = vulnerability_id
        self.field_name = field_name
        self.cause = cause
        super().__init__(
            f"failed to record {field_name} history for vulnerability {vulnerability_id}: {cause}"
        )
