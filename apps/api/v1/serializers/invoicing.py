# apps/api/v1/serializers/invoicing.py
"""
Serializers for Invoice and InvoiceLine models.

Totals are read-only everywhere: the server computes them from the lines.
"""
from rest_framework import serializers

from apps.invoicing.models import Invoice, InvoiceLine
from apps.payments.models import PaymentAllocation
from .base import EntityModelSerializer, VersionSerializer


class InvoiceLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLine
        fields = [
            'id', 'line_number', 'description', 'hsn_code',
            'quantity', 'unit', 'rate', 'tax_rate',
            'amount', 'tax_amount', 'total_amount',
        ]
        read_only_fields = fields


class InvoiceAllocationSerializer(serializers.ModelSerializer):
    """Allocations as seen from the invoice side."""
    payment_number = serializers.CharField(source='payment.payment_number', read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = ['id', 'payment', 'payment_number', 'allocated_amount', 'allocation_date']
        read_only_fields = fields


class InvoiceListSerializer(EntityModelSerializer):
    """Serializer for Invoice list view."""
    party_id = serializers.IntegerField(read_only=True)
    party_name = serializers.CharField(source='party.name', read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'invoice_type',
            'party_id', 'party_name',
            'invoice_date', 'due_date',
            'total_amount', 'amount_paid', 'amount_due', 'currency',
            'status', 'days_overdue', 'aging_bucket', 'version',
        ]
        read_only_fields = fields


class InvoiceDetailSerializer(InvoiceListSerializer):
    """Serializer for Invoice detail view with lines and allocations."""
    lines = InvoiceLineSerializer(many=True, read_only=True)
    allocations = InvoiceAllocationSerializer(many=True, read_only=True)

    class Meta(InvoiceListSerializer.Meta):
        fields = InvoiceListSerializer.Meta.fields + [
            'entity', 'customer', 'vendor', 'reference_number',
            'gst_type', 'cgst', 'sgst', 'igst', 'tds_amount', 'round_off',
            'subtotal', 'line_tax', 'total_tax',
            'is_finalized', 'cancelled_at', 'cancellation_reason',
            'notes', 'terms_and_conditions',
            'lines', 'allocations',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class InvoiceLineInputSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500)
    hsn_code = serializers.CharField(max_length=10, required=False, default='', allow_blank=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit = serializers.CharField(max_length=20, required=False, default='nos')
    rate = serializers.DecimalField(max_digits=14, decimal_places=2)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, default=0)


class InvoiceWriteFieldsSerializer(serializers.Serializer):
    invoice_date = serializers.DateField(required=False)
    due_date = serializers.DateField(required=False)
    reference_number = serializers.CharField(max_length=50, required=False, allow_blank=True)
    gst_type = serializers.ChoiceField(choices=Invoice.GST_TYPE_CHOICES, required=False)
    cgst = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    sgst = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    igst = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    tds_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    round_off = serializers.DecimalField(max_digits=8, decimal_places=2, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    terms_and_conditions = serializers.CharField(required=False, allow_blank=True)


class InvoiceCreateSerializer(InvoiceWriteFieldsSerializer):
    """
    Input for creating an invoice. Any client-supplied totals are ignored.
    """
    invoice_type = serializers.ChoiceField(choices=Invoice.INVOICE_TYPE_CHOICES)
    customer = serializers.IntegerField(required=False, allow_null=True, help_text="Customer ID (sales)")
    vendor = serializers.IntegerField(required=False, allow_null=True, help_text="Vendor ID (purchase)")
    currency = serializers.CharField(max_length=3, required=False)
    lines = InvoiceLineInputSerializer(many=True)
    finalize = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        customer, vendor = attrs.get('customer'), attrs.get('vendor')
        if bool(customer) == bool(vendor):
            raise serializers.ValidationError("Specify either a customer or a vendor, not both.")
        if attrs['invoice_type'] == 'sales' and not customer:
            raise serializers.ValidationError({'customer': "Sales invoices require a customer."})
        if attrs['invoice_type'] == 'purchase' and not vendor:
            raise serializers.ValidationError({'vendor': "Purchase invoices require a vendor."})
        return attrs


class InvoiceUpdateSerializer(VersionSerializer, InvoiceWriteFieldsSerializer):
    lines = InvoiceLineInputSerializer(many=True, required=False)
