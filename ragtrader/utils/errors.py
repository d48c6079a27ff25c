"""Custom exception classes for the trading bot"""

from typing import Optional, Dict, Any


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigurationError(ValueError):
    """Missing or invalid configuration"""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key

        full_message = message
        if config_key:
            full_message = f"{message} (config: {config_key})"

        super().__init__(full_message)


# ============================================================================
# COLLABORATOR ERRORS
# ============================================================================

class CollaboratorError(Exception):
    """Failure calling an external service (exchange or reasoning API)"""

    def __init__(
        self,
        service: str,
        operation: str,
        status_code: Optional[int] = None,
        message: str = "",
        details: Optional[Dict] = None
    ):
        self.service = service
        self.operation = operation
        self.status_code = status_code
        self.details = details or {}

        full_message = f"[{service}] {operation}"
        if status_code:
            full_message += f" (HTTP {status_code})"
        if message:
            full_message += f": {message}"

        super().__init__(full_message)


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationError(ValueError):
    """Base validation error for invalid data"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        self.field = field
        self.value = value

        full_message = message
        if field and value is not None:
            full_message = f"{message} (field: {field}, value: {value})"
        elif field:
            full_message = f"{message} (field: {field})"

        super().__init__(full_message)


class DecisionFormatError(ValidationError):
    """Decision payload is malformed or violates the decision schema"""
    pass


# ============================================================================
# PERSISTENCE ERRORS
# ============================================================================

class PersistenceError(Exception):
    """Durable write to a local store failed"""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path

        full_message = message
        if path:
            full_message = f"{message} (path: {path})"

        super().__init__(full_message)
