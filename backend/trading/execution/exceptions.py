# trading/execution/exceptions.py


class ExecutionError(Exception):
    """
    Base class for order execution / scheduling failures that are not
    broker-side errors (those live in trading.brokers.exceptions).
    """


class InvalidOrder(ExecutionError):
    """
    Order fields are inconsistent: non-positive quantity, unknown side or
    type, missing price for a limit order, closing a flat position...
    """


class OrderAlreadyExecuting(ExecutionError):
    """
    Another worker has already claimed this order (status EXECUTING).
    """


class OrderNotExecutable(ExecutionError):
    """
    The order is already in a terminal state (PLACED, FAILED, CANCELLED)
    and must not be sent again.
    """


class SchedulingError(ExecutionError):
    """
    The durable job store refused or could not register a job, or the
    requested trigger time is unusable.
    """
