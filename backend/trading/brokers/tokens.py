# trading/brokers/tokens.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Optional, Tuple

from .types import AuthToken

logger = logging.getLogger(__name__)

TokenKey = Tuple[str, str]  # (broker_id, account_id)


class TokenCache:
    """
    Process-wide store holding at most one AuthToken per (broker, account).

    Reads are plain lookups; callers treat an absent entry and an expired
    entry the same way (both mean "log in").

    `get_or_login` is single-flight per key: the first caller for a key
    runs the vendor login and publishes the outcome through a Future that
    concurrent callers for the same key wait on. A failed login is handed
    to every waiter as the same exception, so N callers with bad
    credentials cost one vendor login. Logins for different keys never
    wait on each other.
    """

    def __init__(self) -> None:
        self._tokens: Dict[TokenKey, AuthToken] = {}
        self._inflight: Dict[TokenKey, Future] = {}
        self._guard = threading.Lock()

    @staticmethod
    def _key(broker_id: str, account_id: str) -> TokenKey:
        return (str(broker_id), str(account_id))

    # ------------------------------------------------------------------
    # Plain store operations
    # ------------------------------------------------------------------
    def get(self, broker_id: str, account_id: str) -> Optional[AuthToken]:
        with self._guard:
            return self._tokens.get(self._key(broker_id, account_id))

    def put(self, broker_id: str, account_id: str, token: AuthToken) -> None:
        with self._guard:
            self._tokens[self._key(broker_id, account_id)] = token

    def invalidate(self, broker_id: str, account_id: str) -> None:
        with self._guard:
            self._tokens.pop(self._key(broker_id, account_id), None)

    def clear(self) -> None:
        with self._guard:
            self._tokens.clear()

    def get_valid(self, broker_id: str, account_id: str) -> Optional[AuthToken]:
        token = self.get(broker_id, account_id)
        if token is None or token.is_expired():
            return None
        return token

    # ------------------------------------------------------------------
    # Single-flight login
    # ------------------------------------------------------------------
    def get_or_login(
        self,
        broker_id: str,
        account_id: str,
        login: Callable[[], AuthToken],
    ) -> AuthToken:
        """
        Return a valid cached token, or run `login` exactly once for all
        concurrent callers of this key and cache its result.

        If `login` raises, the previous (expired) entry is dropped, nothing
        new is cached and the error propagates to the caller that ran it
        and to every caller that was waiting on it. The next call after
        that starts a fresh login.
        """
        key = self._key(broker_id, account_id)
        with self._guard:
            token = self._tokens.get(key)
            if token is not None and not token.is_expired():
                return token
            flight = self._inflight.get(key)
            leader = flight is None
            if leader:
                flight = self._inflight[key] = Future()

        if not leader:
            return flight.result()

        logger.info(f"Token miss for broker={broker_id} account={account_id}, logging in")
        try:
            token = login()
        except BaseException as exc:
            with self._guard:
                self._tokens.pop(key, None)
                self._inflight.pop(key, None)
            flight.set_exception(exc)
            raise

        with self._guard:
            self._tokens[key] = token
            self._inflight.pop(key, None)
        flight.set_result(token)
        return token


_default_cache = TokenCache()


def get_token_cache() -> TokenCache:
    return _default_cache
