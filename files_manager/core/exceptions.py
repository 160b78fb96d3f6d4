"""Error taxonomy shared by the API and the thumbnail worker.

Every error carries the message rendered to clients as ``{"error": message}``
and the HTTP status it maps to.
"""


class FilesManagerError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(FilesManagerError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(FilesManagerError):
    status_code = 401
    default_message = "Unauthorized"

    def __init__(self):
        # The cause is never exposed to the caller
        super().__init__("Unauthorized")


class NotFoundError(FilesManagerError):
    status_code = 404
    default_message = "Not found"


class DomainError(FilesManagerError):
    status_code = 400
    default_message = "Operation not allowed"


class StorageError(FilesManagerError):
    """Disk failure while writing uploaded content."""

    status_code = 400
    default_message = "Storage failure"


class InfrastructureError(FilesManagerError):
    status_code = 500
    default_message = "Service unavailable"


class JobError(FilesManagerError):
    """Raised by worker handlers; the queue decides whether to retry."""

    status_code = 500
    default_message = "Job failed"
