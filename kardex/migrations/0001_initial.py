"""
Initial migration for Kardex models.
"""

from decimal import Decimal
import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    """Create Kardex models: Location, LedgerEntry, LocationBalance, ProductStock, Reservation."""

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Location',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='Unique identifier (e.g. MAIN, AMAZON_FBA, MELI_FULL)', max_length=50, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=100, verbose_name='Name')),
                ('kind', models.CharField(choices=[('WAREHOUSE', 'Warehouse'), ('FBA', 'Fulfillment by Amazon'), ('FULFILLMENT_CENTER', 'Fulfillment center')], default='WAREHOUSE', max_length=20, verbose_name='Kind')),
                ('is_virtual', models.BooleanField(default=False, help_text='Stock here is operated by a marketplace, not by our staff.', verbose_name='Third-party controlled')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadata')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Location',
                'verbose_name_plural': 'Locations',
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='LedgerEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('product_id', models.CharField(max_length=64, verbose_name='Product')),
                ('location_id', models.CharField(max_length=50, verbose_name='Location')),
                ('entry_type', models.CharField(choices=[('INITIAL_LOAD', 'Initial load'), ('PURCHASE', 'Purchase'), ('SALE', 'Sale'), ('ADJUSTMENT', 'Adjustment'), ('TRANSFER_OUT', 'Transfer out'), ('TRANSFER_IN', 'Transfer in'), ('RETURN_IN', 'Customer return'), ('RETURN_OUT', 'Supplier return')], max_length=20, verbose_name='Type')),
                ('quantity_change', models.IntegerField(help_text='Positive = inbound, negative = outbound', verbose_name='Quantity change')),
                ('balance_after', models.IntegerField(verbose_name='Balance after')),
                ('unit_cost', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=14, verbose_name='Unit cost')),
                ('average_cost_before', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=14, verbose_name='Average cost before')),
                ('average_cost_after', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=14, verbose_name='Average cost after')),
                ('resets_cost', models.BooleanField(default=False, help_text='Full recount: average cost becomes unit cost.', verbose_name='Resets average cost')),
                ('reference_type', models.CharField(blank=True, choices=[('ORDER', 'Order'), ('PURCHASE_ORDER', 'Purchase order'), ('TRANSFER', 'Transfer'), ('ADJUSTMENT', 'Adjustment'), ('RETURN', 'Return'), ('RESERVATION', 'Reservation'), ('BACKFILL', 'Backfill')], default='', max_length=20, verbose_name='Reference type')),
                ('reference_id', models.CharField(blank=True, default='', max_length=100, verbose_name='Reference ID')),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Event time')),
                ('sequence', models.PositiveBigIntegerField(verbose_name='Insertion sequence')),
                ('actor', models.CharField(help_text='User id, or the system actor for automated postings', max_length=100, verbose_name='Actor')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadata')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Written at')),
            ],
            options={
                'verbose_name': 'Ledger entry',
                'verbose_name_plural': 'Ledger entries',
                'ordering': ['timestamp', 'sequence'],
                'indexes': [
                    models.Index(fields=['product_id', 'location_id', 'timestamp', 'sequence'], name='kardex_entry_key_order_idx'),
                    models.Index(fields=['product_id', 'timestamp'], name='kardex_entry_product_ts_idx'),
                    models.Index(fields=['reference_type', 'reference_id'], name='kardex_entry_reference_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('product_id', 'location_id', 'sequence'), name='kardex_unique_entry_sequence'),
                    models.CheckConstraint(condition=models.Q(('quantity_change', 0), _negated=True), name='kardex_entry_nonzero_change'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LocationBalance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_id', models.CharField(max_length=64, verbose_name='Product')),
                ('location_id', models.CharField(max_length=50, verbose_name='Location')),
                ('on_hand', models.IntegerField(default=0, verbose_name='On hand')),
                ('reserved', models.IntegerField(default=0, verbose_name='Reserved')),
                ('average_cost', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=14, verbose_name='Average cost')),
                ('last_sequence', models.PositiveBigIntegerField(default=0, verbose_name='Last sequence')),
                ('entry_count', models.PositiveIntegerField(default=0)),
                ('last_timestamp', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Location balance',
                'verbose_name_plural': 'Location balances',
                'constraints': [
                    models.UniqueConstraint(fields=('product_id', 'location_id'), name='kardex_unique_balance_key'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProductStock',
            fields=[
                ('product_id', models.CharField(max_length=64, primary_key=True, serialize=False, verbose_name='Product')),
                ('stock_quantity', models.IntegerField(default=0, verbose_name='Stock quantity')),
                ('reserved_quantity', models.IntegerField(default=0, verbose_name='Reserved')),
                ('available_stock', models.IntegerField(default=0, verbose_name='Available stock')),
                ('total_value', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=18, verbose_name='Inventory value')),
                ('inventory', models.JSONField(blank=True, default=dict, verbose_name='Per-location stock')),
                ('backordered', models.BooleanField(default=False, help_text='Some location has more reserved than on hand.', verbose_name='Backordered')),
                ('refreshed_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Refreshed at')),
            ],
            options={
                'verbose_name': 'Product stock',
                'verbose_name_plural': 'Product stock',
            },
        ),
        migrations.CreateModel(
            name='Reservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_id', models.CharField(max_length=64, verbose_name='Product')),
                ('location_id', models.CharField(max_length=50, verbose_name='Location')),
                ('quantity', models.PositiveIntegerField(verbose_name='Quantity')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('committed', 'Committed'), ('released', 'Released')], default='pending', max_length=20, verbose_name='Status')),
                ('reference_id', models.CharField(blank=True, default='', max_length=100)),
                ('actor', models.CharField(blank=True, default='', max_length=100)),
                ('expires_at', models.DateTimeField(blank=True, help_text='Released automatically if not committed by then', null=True, verbose_name='Expires at')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('resolved_at', models.DateTimeField(blank=True, null=True, verbose_name='Resolved at')),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('sale_entry', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='kardex.ledgerentry', verbose_name='Sale entry')),
            ],
            options={
                'verbose_name': 'Reservation',
                'verbose_name_plural': 'Reservations',
                'indexes': [
                    models.Index(fields=['product_id', 'location_id', 'status'], name='kardex_res_key_status_idx'),
                    models.Index(fields=['status', 'expires_at'], name='kardex_res_status_exp_idx'),
                ],
            },
        ),
    ]
