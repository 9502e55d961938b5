"""Exception types for the kizeo jobs engine."""


class KizeoJobsError(Exception):
    """Base exception for all kizeo jobs errors."""

    pass


class JobNotFoundError(KizeoJobsError):
    """Raised when a job is not found in the ledger."""

    def __init__(self, job_id: int, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class RemoteHttpError(KizeoJobsError):
    """Raised when an HTTP request to the forms provider fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")


class EmptyArtifactError(KizeoJobsError):
    """Raised when a fetched artifact has no content or was written empty."""

    def __init__(self, path: str = None, message: str = None):
        self.path = path
        if message is None:
            message = f"Empty artifact written to {path}" if path else "Empty artifact"
        super().__init__(message)


class ArtifactWriteError(KizeoJobsError):
    """Raised when an artifact cannot be written to its deterministic path."""

    def __init__(self, path: str, message: str = None):
        self.path = path
        if message is None:
            message = f"Failed to write artifact {path}"
        super().__init__(message)


class SessionUnavailableError(KizeoJobsError):
    """Raised when the ledger connection is lost and cannot be reacquired."""

    pass


class InvalidTenantError(KizeoJobsError):
    """Raised when a tenant code is not one of the configured agencies."""

    def __init__(self, tenant_code: str, message: str = None):
        self.tenant_code = tenant_code
        if message is None:
            message = f"Invalid tenant code: {tenant_code}"
        super().__init__(message)


class MissingListError(KizeoJobsError):
    """Raised when a tenant has no provider list configured."""

    def __init__(self, tenant_code: str, list_kind: str, message: str = None):
        self.tenant_code = tenant_code
        self.list_kind = list_kind
        if message is None:
            message = f"No {list_kind} list configured for tenant {tenant_code}"
        super().__init__(message)


class ProviderListUnavailableError(KizeoJobsError):
    """Raised when the provider list cannot be fetched; nothing is mutated."""

    def __init__(self, list_id: str, message: str = None):
        self.list_id = list_id
        if message is None:
            message = f"Provider list {list_id} could not be fetched"
        super().__init__(message)


class ClientCollisionError(KizeoJobsError):
    """Raised when a client id already exists on the provider client list."""

    def __init__(self, subject_id: str, tenant_code: str, message: str = None):
        self.subject_id = subject_id
        self.tenant_code = tenant_code
        if message is None:
            message = (
                f"Client {subject_id} already present on the list of tenant {tenant_code}"
            )
        super().__init__(message)
