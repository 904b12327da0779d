# trading/brokers/base.py

from __future__ import annotations

from datetime import datetime
from typing import Any, FrozenSet, List, Mapping

from .exceptions import UnsupportedOperation
from .types import (
    AuthToken,
    BrokerCapability,
    BrokerOrderRequest,
    BrokerOrderResponse,
    BrokerPosition,
    HistoricalDataResult,
)


class BrokerAdapter:
    """
    Abstract broker adapter.

    One concrete subclass exists per broker vendor (Angel One, Dhan, ...).
    The rest of the system (execution engine, scheduler, API views) depends
    only on this class and the normalized datatypes from
    trading.brokers.types, never on vendor payloads.

    Every operation is keyed by the BrokerAccount id, so a single adapter
    instance serves all accounts linked to its vendor.

    Subclasses declare what they implement through `capabilities`. Any
    operation left at the base implementation raises UnsupportedOperation,
    so callers can rely on a distinct failure instead of undefined
    behaviour. Callers should check `supports()` / `require()` first.
    """

    broker_id: str = ""
    display_name: str = ""
    capabilities: FrozenSet[BrokerCapability] = frozenset()

    # ------------------------------------------------------------------
    # Capability helpers
    # ------------------------------------------------------------------
    def supports(self, capability: BrokerCapability) -> bool:
        return capability in self.capabilities

    def require(self, capability: BrokerCapability) -> None:
        if not self.supports(capability):
            raise UnsupportedOperation(
                f"{capability.value} not supported by broker: {self.broker_id}"
            )

    def _unsupported(self, operation: str) -> UnsupportedOperation:
        return UnsupportedOperation(
            f"{operation}() not implemented for broker: {self.broker_id}"
        )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------
    def authenticate(self, account_id: str) -> AuthToken:
        """
        Return a valid AuthToken for the account.

        Implementations should reuse the shared TokenCache and only perform
        a vendor login on a miss or an expired entry.
        """
        raise self._unsupported("authenticate")

    def place_order(self, account_id: str, request: BrokerOrderRequest) -> BrokerOrderResponse:
        """
        Map the canonical request into a vendor payload, submit it, and
        normalize the answer.

        Implementations must raise:
          - MappingError when the request cannot be expressed for the vendor
          - VendorRejected when the vendor answers with a failure status
          - TransportError on network errors / unparseable non-2xx answers
        """
        raise self._unsupported("place_order")

    def cancel_order(self, account_id: str, broker_order_id: str) -> None:
        raise self._unsupported("cancel_order")

    def get_order_status(self, account_id: str, broker_order_id: str) -> BrokerOrderResponse:
        raise self._unsupported("get_order_status")

    def get_positions(self, account_id: str) -> List[BrokerPosition]:
        """
        Return the account's net positions in normalized form.

        Whether fully-closed positions (net quantity 0) are included is a
        per-vendor decision made in that vendor's mappers.
        """
        raise self._unsupported("get_positions")

    def get_historical_data(
        self,
        account_id: str,
        symbol: str,
        interval: str,
        from_ts: datetime,
        to_ts: datetime,
    ) -> HistoricalDataResult:
        raise self._unsupported("get_historical_data")

    def validate_credentials(self, raw_credentials: Mapping[str, Any]) -> bool:
        """
        Best-effort probe used when a user links an account.

        Must never raise: parsing, mapping and transport failures are logged
        and reported as False.
        """
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(broker_id={self.broker_id!r})"
