"""Exception taxonomy for CERT-HUB with structured error details for API responses."""


class BaseApiException(Exception):
    """
    Base exception for all API-related errors.

    Handles conversion to Django Ninja HTTP responses with appropriate status codes.
    """

    status_code = 400  # Default to Bad Request

    def __init__(self, message, code=None, field=None):
        # type: (str, str|None, str|None) -> None
        """
        Initialize BaseApiException with structured error details.

        :param message: Human-readable error message
        :param code: Machine-readable error code for programmatic handling
        :param field: The specific field that caused the error
        """
        super().__init__(message)
        self.message = message
        self.code = code or "error"
        self.field = field

    def to_error_response(self):
        # type: () -> dict
        """
        Convert exception to ErrorResponse format for API.

        :return: Dictionary conforming to ErrorResponse schema
        """
        error_detail = {"message": self.message, "code": self.code}
        if self.field:
            error_detail["field"] = self.field
        return {"error": error_detail}


class InvalidInputError(BaseApiException, ValueError):
    """Malformed identity number, content hash, wallet or other caller input."""

    status_code = 422  # Unprocessable Entity

    def __init__(self, message, field=None, code=None):
        # type: (str, str|None, str|None) -> None
        super().__init__(message, code or "invalid_input", field)


class ConflictError(BaseApiException):
    """
    Business-rule violation against existing state.

    Reported to the caller, never retried.
    """

    status_code = 409  # Conflict
    default_code = "conflict"
    default_field = None  # type: str|None

    def __init__(self, message, field=None):
        # type: (str, str|None) -> None
        super().__init__(message, self.default_code, field or self.default_field)


class DuplicateIdentityError(ConflictError):
    """Identity key is already registered."""

    default_code = "duplicate_identity"
    default_field = "identity_key"


class DuplicateWalletError(ConflictError):
    """Wallet address is already bound to another identity."""

    default_code = "duplicate_wallet"
    default_field = "wallet_address"


class WalletInUseError(ConflictError):
    """Migration target wallet is already bound to another identity."""

    default_code = "wallet_in_use"
    default_field = "wallet_address"


class DuplicateCertificateError(ConflictError):
    """A certificate with this content hash has already been anchored."""

    default_code = "duplicate_certificate"
    default_field = "content_hash"

    def __init__(self, message, existing_status=None):
        # type: (str, str|None) -> None
        """
        Initialize duplicate certificate error.

        :param message: Human-readable error message
        :param existing_status: Status of the existing record (ISSUED/REVOKED), if known
        """
        super().__init__(message)
        self.existing_status = existing_status

    def to_error_response(self):
        # type: () -> dict
        response = super().to_error_response()
        if self.existing_status:
            response["error"]["existing_status"] = self.existing_status
        return response


class DuplicatePendingRequestError(ConflictError):
    """Wallet already has an unresolved issuer request."""

    default_code = "duplicate_pending_request"
    default_field = "wallet_address"


class AlreadyResolvedError(ConflictError):
    """Issuer request already reached a terminal state."""

    default_code = "already_resolved"


class AlreadyRevokedError(ConflictError):
    """Certificate or issuer is already revoked."""

    default_code = "already_revoked"


class NotFoundError(BaseApiException):
    """Resource not found error."""

    status_code = 404  # Not Found

    def __init__(self, message, resource_type=None, resource_id=None):
        # type: (str, str|None, str|None) -> None
        """
        Initialize not found error.

        :param message: Human-readable error message
        :param resource_type: Type of resource not found (e.g., "certificate")
        :param resource_id: ID of the resource not found
        """
        super().__init__(message, "not_found", None)
        self.resource_type = resource_type
        self.resource_id = resource_id

    def to_error_response(self):
        # type: () -> dict
        """
        Convert exception to ErrorResponse format for API.

        :return: Dictionary conforming to ErrorResponse schema with additional context
        """
        error_detail = {"message": self.message, "code": self.code}
        if self.resource_type:
            error_detail["resource_type"] = self.resource_type
        if self.resource_id:
            error_detail["resource_id"] = self.resource_id
        return {"error": error_detail}


class UnauthorizedIssuerError(BaseApiException):
    """Wallet does not hold the issuer role."""

    status_code = 403  # Forbidden

    def __init__(self, message, wallet=None):
        # type: (str, str|None) -> None
        super().__init__(message, "unauthorized_issuer", "issuer_wallet")
        self.wallet = wallet


class LedgerError(BaseApiException):
    """Base class for failures talking to the external ledger."""

    status_code = 502  # Bad Gateway
    retryable = False
    default_code = "ledger_error"

    def __init__(self, message, operation=None):
        # type: (str, str|None) -> None
        """
        Initialize ledger error.

        :param message: Human-readable error message
        :param operation: Ledger operation that failed (e.g. "issueCertificate")
        """
        super().__init__(message, self.default_code, None)
        self.operation = operation

    def to_error_response(self):
        # type: () -> dict
        response = super().to_error_response()
        response["error"]["retryable"] = self.retryable
        if self.operation:
            response["error"]["operation"] = self.operation
        return response


class LedgerUnavailableError(LedgerError):
    """Transient ledger failure (timeout, connection loss). Callers may retry with backoff."""

    status_code = 503  # Service Unavailable
    retryable = True
    default_code = "ledger_unavailable"


class LedgerRejectedError(LedgerError):
    """Permanent ledger-side refusal (revert, duplicate hash, unauthorized signer)."""

    status_code = 502  # Bad Gateway
    retryable = False
    default_code = "ledger_rejected"
