"""
Escrow domain exceptions

Every exception carries a stable error code, a human message and the HTTP status the
API layer answers with. Services raise them; api.exceptions turns them into the
standard error envelope.
"""


class EscrowError(Exception):
    """Base exception for escrow operations"""

    code = "ESCROW_ERROR"
    http_status = 400

    def __init__(self, message: str = "Escrow operation failed"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(EscrowError):
    """Transaction or related entity does not exist"""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class NotAuthorizedError(EscrowError):
    """Caller is not the party (or role) entitled to the operation"""

    code = "NOT_AUTHORIZED"
    http_status = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class InvalidStateTransitionError(EscrowError):
    """Operation is not legal from the transaction's current state"""

    code = "INVALID_STATE_TRANSITION"
    http_status = 409

    def __init__(self, current, target=None, message: str = None):
        self.current = current
        self.target = target
        if message is None:
            current_value = getattr(current, "value", current)
            if target is None:
                message = f"Operation not allowed in state '{current_value}'"
            else:
                message = f"Cannot transition from '{current_value}' to '{getattr(target, 'value', target)}'"
        super().__init__(message)


class StateConflictError(EscrowError):
    """The row changed between read and conditional write - caller should retry"""

    code = "STATE_CHANGED_RETRY"
    http_status = 409

    def __init__(self, message: str = "State changed, retry"):
        super().__init__(message)


class InsufficientFundsError(EscrowError):
    """Locked-funds (or withdrawable) balance does not cover the amount"""

    code = "INSUFFICIENT_FUNDS"
    http_status = 400

    def __init__(self, available=None, required=None, message: str = None):
        self.available = available
        self.required = required
        if message is None:
            message = "Insufficient funds"
            if available is not None and required is not None:
                message = f"Insufficient funds: available {available}, required {required}"
        super().__init__(message)


class CredentialExpiredError(EscrowError):
    """QR credential presented after its expiry"""

    code = "CREDENTIAL_EXPIRED"
    http_status = 400

    def __init__(self, message: str = "QR code has expired"):
        super().__init__(message)


class CredentialAlreadyUsedError(EscrowError):
    """QR credential was already scanned"""

    code = "CREDENTIAL_ALREADY_USED"
    http_status = 409

    def __init__(self, message: str = "QR code has already been scanned"):
        super().__init__(message)


class CredentialMismatchError(EscrowError):
    """Presented QR payload does not match the transaction's credential"""

    code = "CREDENTIAL_MISMATCH"
    http_status = 400

    def __init__(self, message: str = "Invalid QR code"):
        super().__init__(message)


class ValidationError(EscrowError):
    """Malformed input (caller's fault)"""

    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message)


class DependencyUnavailableError(EscrowError):
    """Persistence (or another required collaborator) is unreachable"""

    code = "DEPENDENCY_UNAVAILABLE"
    http_status = 503

    def __init__(self, message: str = "A required dependency is unavailable"):
        super().__init__(message)
