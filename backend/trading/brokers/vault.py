# trading/brokers/vault.py

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from .config import get_setting
from .exceptions import BrokerConfigError

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialVault(Protocol):
    """
    Decrypts per-account broker credentials on demand.

    Implementations must not cache plaintext: every call decrypts afresh
    and the returned dict belongs to the caller for that call only.
    """

    def read_decrypted_credentials(self, account_id: str) -> Optional[Dict[str, Any]]:
        ...

    def encrypt(self, credentials: Mapping[str, Any]) -> str:
        ...


class FernetCredentialVault:
    """
    Vault backed by BrokerAccount.encrypted_credentials, encrypted with a
    Fernet key taken from settings.BROKER_CREDENTIALS_KEY (or the env var of
    the same name).
    """

    def __init__(self, key: Optional[str] = None):
        key = key or get_setting("BROKER_CREDENTIALS_KEY")
        if not key:
            raise BrokerConfigError("BROKER_CREDENTIALS_KEY is not configured")
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as exc:
            raise BrokerConfigError(f"Invalid BROKER_CREDENTIALS_KEY: {exc}") from exc

    def encrypt(self, credentials: Mapping[str, Any]) -> str:
        blob = json.dumps(dict(credentials)).encode("utf-8")
        return self._fernet.encrypt(blob).decode("ascii")

    def decrypt(self, blob: str) -> Dict[str, Any]:
        try:
            plain = self._fernet.decrypt(blob.encode("ascii"))
        except InvalidToken as exc:
            raise BrokerConfigError("Stored credentials cannot be decrypted with the configured key") from exc
        return json.loads(plain.decode("utf-8"))

    def read_decrypted_credentials(self, account_id: str) -> Optional[Dict[str, Any]]:
        from accounts.models import BrokerAccount  # local import to avoid app-loading order issues

        blob = (
            BrokerAccount.objects.filter(pk=account_id)
            .values_list("encrypted_credentials", flat=True)
            .first()
        )
        if not blob:
            logger.warning(f"No stored credentials for broker account {account_id}")
            return None
        return self.decrypt(blob)


_default_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    global _default_vault
    if _default_vault is None:
        _default_vault = FernetCredentialVault()
    return _default_vault


def set_vault(vault: Optional[CredentialVault]) -> None:
    """
    Replace the process-wide vault (tests, alternative secret stores).
    Passing None resets to the settings-configured Fernet vault.
    """
    global _default_vault
    _default_vault = vault
