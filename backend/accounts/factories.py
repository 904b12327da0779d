import factory
from django.conf import settings
from factory.django import DjangoModelFactory

from .models import BrokerAccount


class UserFactory(DjangoModelFactory):
    class Meta:
        model = settings.AUTH_USER_MODEL

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda obj: f"{obj.username}@example.com")
    is_active = True


class BrokerAccountFactory(DjangoModelFactory):
    """
    Credentials are left empty by default; tests that go through the vault
    pass `encrypted_credentials=vault.encrypt({...})`.
    """

    class Meta:
        model = BrokerAccount

    user = factory.SubFactory(UserFactory)
    broker_id = "fake"
    nickname = factory.Sequence(lambda n: f"Account {n}")
    encrypted_credentials = ""
    metadata = {}
