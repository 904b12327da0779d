# trading/brokers/tests/test_vault.py

from __future__ import annotations

from cryptography.fernet import Fernet
from django.test import TestCase

from accounts.factories import BrokerAccountFactory
from trading.brokers.exceptions import BrokerConfigError
from trading.brokers.vault import FernetCredentialVault


class FernetCredentialVaultTests(TestCase):
    def setUp(self):
        self.vault = FernetCredentialVault(key=Fernet.generate_key().decode())

    def test_reads_back_encrypted_account_credentials(self):
        creds = {"clientId": "1000000001", "accessToken": "dhan-token"}
        account = BrokerAccountFactory(broker_id="dhan", encrypted_credentials=self.vault.encrypt(creds))

        self.assertNotIn("dhan-token", account.encrypted_credentials)
        self.assertEqual(self.vault.read_decrypted_credentials(str(account.id)), creds)

    def test_account_without_credentials(self):
        account = BrokerAccountFactory()
        self.assertIsNone(self.vault.read_decrypted_credentials(str(account.id)))

    def test_wrong_key_is_config_error(self):
        account = BrokerAccountFactory(encrypted_credentials=self.vault.encrypt({"a": 1}))
        other = FernetCredentialVault(key=Fernet.generate_key().decode())

        with self.assertRaises(BrokerConfigError):
            other.read_decrypted_credentials(str(account.id))

    def test_missing_or_invalid_key(self):
        with self.settings(BROKER_CREDENTIALS_KEY=""):
            with self.assertRaises(BrokerConfigError):
                FernetCredentialVault()
        with self.assertRaises(BrokerConfigError):
            FernetCredentialVault(key="not-a-fernet-key")
