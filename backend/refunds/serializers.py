from rest_framework import serializers


class FullOrderRefundRequestSerializer(serializers.Serializer):
    """
    Serializer for requesting a full order refund.

    Expected input:
    {
        "order_id": "uuid",
        "reason": "Customer cancelled order"  (optional)
    }
    """

    DEFAULT_REASON = "No reason provided"

    order_id = serializers.UUIDField(required=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")

    def validate(self, data):
        if not data.get("reason"):
            data["reason"] = self.DEFAULT_REASON
        return data
