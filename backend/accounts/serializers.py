from rest_framework import serializers

from .models import BrokerAccount


class BrokerAccountSerializer(serializers.ModelSerializer):
    """Read-only view of a linked account. Credentials never leave the server."""

    user = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = BrokerAccount
        fields = [
            "id",
            "user",
            "broker_id",
            "nickname",
            "metadata",
            "is_active",
            "created_at",
            "updated_at",
        ]


class LinkBrokerAccountSerializer(serializers.Serializer):
    broker_id = serializers.CharField(max_length=32)
    credentials = serializers.DictField()
    metadata = serializers.DictField(required=False, default=dict)
    nickname = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
