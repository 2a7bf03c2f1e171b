"""Payment request serializers."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers


class InitiateKhaltiPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class VerifyKhaltiPaymentSerializer(serializers.Serializer):
    pidx = serializers.CharField(max_length=100)


class RefundPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    reason = serializers.CharField(required=False, default="", allow_blank=True)
