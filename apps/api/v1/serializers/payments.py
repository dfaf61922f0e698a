# apps/api/v1/serializers/payments.py
"""
Serializers for Payments and their allocations.
"""
from rest_framework import serializers

from .base import EntityModelSerializer
from apps.payments.models import Payment, PaymentAllocation


class PaymentAllocationSerializer(serializers.ModelSerializer):
    """Serializer for PaymentAllocation (read-only, nested in payment detail)."""
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    invoice_total = serializers.DecimalField(
        source='invoice.total_amount',
        max_digits=14,
        decimal_places=2,
        read_only=True
    )
    invoice_balance = serializers.DecimalField(
        source='invoice.amount_due',
        max_digits=14,
        decimal_places=2,
        read_only=True
    )

    class Meta:
        model = PaymentAllocation
        fields = [
            'id',
            'invoice',
            'invoice_number',
            'invoice_total',
            'invoice_balance',
            'allocated_amount',
            'allocation_date',
        ]
        read_only_fields = fields


class PaymentListSerializer(EntityModelSerializer):
    """Serializer for Payment list view."""
    party_name = serializers.CharField(source='party.name', read_only=True)
    unallocated_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id',
            'payment_number',
            'payment_type',
            'customer',
            'vendor',
            'party_name',
            'payment_date',
            'amount',
            'currency',
            'payment_mode',
            'reference_number',
            'status',
            'allocated_amount',
            'unallocated_amount',
            'is_reconciled',
            'version',
        ]
        read_only_fields = fields


class PaymentDetailSerializer(PaymentListSerializer):
    """Serializer for Payment detail view."""
    allocations = PaymentAllocationSerializer(many=True, read_only=True)

    class Meta(PaymentListSerializer.Meta):
        fields = PaymentListSerializer.Meta.fields + [
            'entity',
            'bank_account',
            'cheque_number',
            'cheque_date',
            'tds_deducted',
            'reconciled_date',
            'notes',
            'recorded_by',
            'allocations',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class CreatePaymentSerializer(serializers.Serializer):
    """Serializer for recording a payment."""
    payment_type = serializers.ChoiceField(choices=Payment.PAYMENT_TYPE_CHOICES)
    customer = serializers.IntegerField(required=False, allow_null=True, help_text="Customer ID (received)")
    vendor = serializers.IntegerField(required=False, allow_null=True, help_text="Vendor ID (made)")
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_mode = serializers.ChoiceField(choices=Payment.PAYMENT_MODE_CHOICES, default='neft')
    bank_account = serializers.IntegerField(required=False, allow_null=True)
    payment_date = serializers.DateField(required=False, allow_null=True)
    currency = serializers.CharField(max_length=3, required=False)
    reference_number = serializers.CharField(required=False, default='', allow_blank=True)
    cheque_number = serializers.CharField(required=False, default='', allow_blank=True)
    cheque_date = serializers.DateField(required=False, allow_null=True)
    tds_deducted = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, default=0)
    status = serializers.ChoiceField(choices=['pending', 'cleared'], default='pending')
    notes = serializers.CharField(required=False, default='', allow_blank=True)

    def validate(self, attrs):
        party_field = 'customer' if attrs['payment_type'] == 'received' else 'vendor'
        other_field = 'vendor' if party_field == 'customer' else 'customer'
        if not attrs.get(party_field):
            raise serializers.ValidationError({party_field: f"This payment type requires a {party_field}."})
        if attrs.get(other_field):
            raise serializers.ValidationError({other_field: "Not allowed for this payment type."})
        return attrs


class AllocationInputSerializer(serializers.Serializer):
    """Input for a single allocation."""
    invoice_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    version = serializers.IntegerField(required=False, allow_null=True, help_text="Expected invoice version")


class AllocateSerializer(serializers.Serializer):
    """Serializer for allocating a payment to invoices."""
    allocations = AllocationInputSerializer(many=True)
    payment_version = serializers.IntegerField(required=False, allow_null=True)

    def validate_allocations(self, value):
        if not value:
            raise serializers.ValidationError("Must specify at least one invoice allocation")
        return value


class DeallocateSerializer(serializers.Serializer):
    invoice_id = serializers.IntegerField()
    amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True,
        help_text="Amount to reverse; the whole allocation when omitted",
    )
    payment_version = serializers.IntegerField(required=False, allow_null=True)
    invoice_version = serializers.IntegerField(required=False, allow_null=True)


class ProposeSerializer(serializers.Serializer):
    invoice_ids = serializers.ListField(child=serializers.IntegerField(), required=False, allow_null=True)
    requested = serializers.DictField(
        child=serializers.DecimalField(max_digits=14, decimal_places=2),
        required=False,
        help_text="Invoice ID -> amount the caller would like to apply",
    )


class ProposedAllocationSerializer(serializers.Serializer):
    invoice_id = serializers.IntegerField(read_only=True)
    invoice_number = serializers.CharField(read_only=True)
    due_date = serializers.DateField(read_only=True)
    amount_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    proposed_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
