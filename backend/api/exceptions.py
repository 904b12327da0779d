import logging
import re

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from trading.brokers.exceptions import (
    AuthenticationFailed,
    BrokerConfigError,
    BrokerError,
    CredentialsInvalid,
    CredentialsMissing,
    MappingError,
    TransportError,
    UnsupportedBrokerError,
    UnsupportedOperation,
    VendorRejected,
)
from trading.execution.exceptions import (
    ExecutionError,
    InvalidOrder,
    OrderAlreadyExecuting,
    OrderNotExecutable,
    SchedulingError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = [
    (UnsupportedBrokerError, status.HTTP_400_BAD_REQUEST),
    (UnsupportedOperation, status.HTTP_400_BAD_REQUEST),
    (CredentialsInvalid, status.HTTP_400_BAD_REQUEST),
    (CredentialsMissing, status.HTTP_400_BAD_REQUEST),
    (MappingError, status.HTTP_400_BAD_REQUEST),
    (InvalidOrder, status.HTTP_400_BAD_REQUEST),
    (SchedulingError, status.HTTP_400_BAD_REQUEST),
    (OrderAlreadyExecuting, status.HTTP_409_CONFLICT),
    (OrderNotExecutable, status.HTTP_409_CONFLICT),
    (AuthenticationFailed, status.HTTP_502_BAD_GATEWAY),
    (VendorRejected, status.HTTP_502_BAD_GATEWAY),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
    (BrokerConfigError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def error_code(exc: Exception) -> str:
    # CredentialsInvalid -> credentials_invalid
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).lower()


def api_exception_handler(exc, context):
    """
    DRF exception handler: broker and execution errors become
    {"error": <code>, "message": <text>} with a fitting status code.
    """
    if isinstance(exc, (BrokerError, ExecutionError)):
        code = next(
            (http_status for error_cls, http_status in STATUS_BY_ERROR if isinstance(exc, error_cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        if code >= 500:
            logger.warning(f"{type(exc).__name__} in {context.get('view').__class__.__name__}: {exc}")
        return Response({"error": error_code(exc), "message": str(exc)}, status=code)
    return exception_handler(exc, context)
