# Create your models here.

import uuid

from django.conf import settings
from django.db import models
from django.db.models import JSONField


class TimeUUIDModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class BrokerAccount(TimeUUIDModel):
    """
    A user's linked brokerage login.

    `broker_id` is the registry key of the adapter that serves this account
    ("angelone", "dhan", ...). Credentials are stored as an opaque
    encrypted blob; only the credential vault reads them back.
    """

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="broker_accounts")
    broker_id = models.CharField(max_length=32)
    nickname = models.CharField(max_length=64, blank=True, default="")
    encrypted_credentials = models.TextField(blank=True, default="")
    metadata = JSONField(default=dict, blank=True)  # client code, default exchange, etc.
    is_active = models.BooleanField(default=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "broker_id"], name="idx_brokeracct_user_broker"),
        ]

    def __str__(self):
        label = self.nickname or str(self.id)
        return f"{label} ({self.broker_id})"
