# trading/execution/dispatch.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Dict, Optional, Set

from django.db import connections

from trading.brokers.config import get_int_setting
from trading.execution.engine import ExecutionResult, OrderExecutionEngine

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


class OrderDispatcher:
    """
    Runs OrderExecutionEngine.execute() off the caller's thread.

    submit() returns the Future immediately; callers that need the outcome
    (tests, CLI) wait on it or call drain(). Each worker closes its DB
    connections after a job so threads never hold stale connections.
    """

    def __init__(self, engine: Optional[OrderExecutionEngine] = None, max_workers: Optional[int] = None):
        self.engine = engine or OrderExecutionEngine()
        workers = max_workers or get_int_setting("ORDER_EXECUTION_WORKERS", DEFAULT_WORKERS)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="order-exec")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(
            self,
            order_id: Any,
            trading_symbol: Optional[str] = None,
            meta: Optional[Dict[str, Any]] = None,
    ) -> "Future[ExecutionResult]":
        future = self._executor.submit(self._run, order_id, trading_symbol, meta)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        logger.info(f"Dispatched order {order_id} for execution")
        return future

    def _run(self, order_id: Any, trading_symbol: Optional[str], meta: Optional[Dict[str, Any]]) -> ExecutionResult:
        try:
            return self.engine.execute(order_id, trading_symbol=trading_symbol, meta=meta)
        except Exception:
            logger.exception(f"Execution of order {order_id} raised")
            raise
        finally:
            connections.close_all()

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted order has finished."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)


_dispatcher: Optional[OrderDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> OrderDispatcher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = OrderDispatcher()
        return _dispatcher


def set_dispatcher(dispatcher: Optional[OrderDispatcher]) -> None:
    global _dispatcher
    with _dispatcher_lock:
        _dispatcher = dispatcher
