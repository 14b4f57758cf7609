# pnap_ccm/exceptions.py
"""
Error types raised by the load balancer IP broker
"""

from typing import Optional


class CCMError(Exception):
    """Base class for all broker errors"""

    error_code = "CCM_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(CCMError):
    """
    Invalid or missing configuration
    Fatal at startup: the cloud provider refuses to initialize
    """

    error_code = "CONFIGURATION_ERROR"


class ValidationError(CCMError):
    """
    Observed state does not make sense (unparseable IP or CIDR,
    recorded IP outside its block, wrong number of blocks).
    The caller retries with its own backoff.
    """

    error_code = "VALIDATION_ERROR"


class ConflictError(CCMError):
    """
    Ambiguous state that must never be auto-resolved,
    e.g. a block attached to another network or duplicate active blocks
    """

    error_code = "CONFLICT"


class TransientError(CCMError):
    """Remote API or network failure, retried by the caller"""

    error_code = "TRANSIENT_ERROR"


class RemoteError(TransientError):
    """Provider API error with optional HTTP status code"""

    error_code = "REMOTE_ERROR"

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        if status_code is None:
            super().__init__(f"Provider API error: {message}")
        else:
            super().__init__(f"Provider API error {status_code}: {message}")
