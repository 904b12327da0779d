# trading/brokers/exceptions.py

from __future__ import annotations

from typing import Any, Dict, Optional


class BrokerError(Exception):
    """
    Base exception for all broker-related errors.
    """
    pass


class UnsupportedBrokerError(BrokerError):
    """
    Raised when a broker identifier cannot be mapped to a registered
    BrokerAdapter implementation.
    """
    pass


class BrokerConfigError(BrokerError):
    """
    Raised when broker configuration (settings, env vars, vault key, etc.)
    is missing or invalid.
    """
    pass


class CredentialsMissing(BrokerError):
    """
    Raised when the vault holds no credentials for a broker account, or the
    stored credentials lack a field the vendor requires.
    """
    pass


class CredentialsInvalid(BrokerError):
    """
    Raised at account-linking time when the vendor probe rejects the
    supplied credentials.
    """
    pass


class AuthenticationFailed(BrokerError):
    """
    Raised when the vendor rejects a login attempt. No token is cached.
    """
    pass


class MappingError(BrokerError):
    """
    Raised when a canonical request cannot be mapped into a vendor payload,
    or a raw vendor payload cannot be mapped back into a normalized type.

    Typical causes: a required metadata field (e.g. tradingSymbol) is
    absent, quantity is not positive, or the vendor changed its schema.
    """
    pass


class VendorRejected(BrokerError):
    """
    Raised when the vendor answered with a failure status and message.

    `message` is the vendor's own text so it can be stored on the order.
    """

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}


class TransportError(BrokerError):
    """
    Raised on network failures, timeouts, or non-2xx responses that carry
    no parseable vendor error.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnsupportedOperation(BrokerError):
    """
    Raised when an adapter is asked for an operation outside its declared
    capability set.
    """
    pass
