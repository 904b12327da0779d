# trading/brokers/registry.py

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional

from .base import BrokerAdapter
from .config import get_list_setting
from .exceptions import UnsupportedBrokerError

if TYPE_CHECKING:
    # Avoid circular import issues at runtime; only used for type-checkers
    from accounts.models import BrokerAccount  # pragma: no cover

logger = logging.getLogger(__name__)

DEFAULT_ENABLED_BROKERS = ["angelone", "dhan"]


def _angelone_factory() -> BrokerAdapter:
    from .angelone.client import AngelOneClient  # local import to avoid circulars

    return AngelOneClient.from_settings()


def _dhan_factory() -> BrokerAdapter:
    from .dhan.client import DhanClient  # local import to avoid circulars

    return DhanClient.from_settings()


ADAPTER_FACTORIES: Dict[str, Callable[[], BrokerAdapter]] = {
    "angelone": _angelone_factory,
    "dhan": _dhan_factory,
}


class BrokerRegistry:
    """
    Maps broker id strings ("angelone", "dhan", ...) to adapter instances.

    This is the main entry point for execution and service code; nothing
    outside this module should instantiate vendor clients directly.
    """

    def __init__(self, adapters: Optional[Iterable[BrokerAdapter]] = None):
        self._adapters: Dict[str, BrokerAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: BrokerAdapter) -> None:
        if not adapter.broker_id:
            raise ValueError(f"Adapter {adapter!r} has no broker_id")
        self._adapters[adapter.broker_id] = adapter

    def get(self, broker_id: str) -> BrokerAdapter:
        try:
            return self._adapters[broker_id]
        except KeyError:
            raise UnsupportedBrokerError(f"Unsupported broker: {broker_id}") from None

    def for_account(self, broker_account: "BrokerAccount") -> BrokerAdapter:
        return self.get(broker_account.broker_id)

    def all(self) -> List[BrokerAdapter]:
        return list(self._adapters.values())

    def broker_ids(self) -> List[str]:
        return sorted(self._adapters)

    def capabilities(self) -> Dict[str, List[str]]:
        """
        {broker_id: [capability, ...]} for every registered adapter.
        """
        return {
            broker_id: sorted(cap.value for cap in self._adapters[broker_id].capabilities)
            for broker_id in self.broker_ids()
        }

    def __contains__(self, broker_id: str) -> bool:
        return broker_id in self._adapters

    @classmethod
    def from_settings(cls) -> "BrokerRegistry":
        """
        Build the registry from ENABLED_BROKERS (default: angelone, dhan).
        Unknown ids fail loudly so typos surface at startup.
        """
        registry = cls()
        for broker_id in get_list_setting("ENABLED_BROKERS", DEFAULT_ENABLED_BROKERS):
            factory = ADAPTER_FACTORIES.get(broker_id)
            if factory is None:
                raise UnsupportedBrokerError(f"ENABLED_BROKERS lists unknown broker: {broker_id}")
            registry.register(factory())
        logger.info(f"Broker registry ready: {', '.join(registry.broker_ids()) or '(empty)'}")
        return registry


_registry: Optional[BrokerRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> BrokerRegistry:
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = BrokerRegistry.from_settings()
        return _registry


def set_registry(registry: Optional[BrokerRegistry]) -> None:
    """Swap the process-wide registry (tests install one with fakes)."""
    global _registry
    with _registry_lock:
        _registry = registry
