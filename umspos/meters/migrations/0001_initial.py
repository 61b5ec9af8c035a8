import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models

METER_TYPE_CHOICES = [('integrated', 'Integrated'), ('split', 'Split'), ('gas', 'Gas'), ('water', 'Water'), ('smart', 'Smart'), ('3 phase', '3 Phase')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('agents', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PurchaseBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('batch_number', models.CharField(db_index=True, max_length=50)),
                ('meter_type', models.CharField(choices=METER_TYPE_CHOICES, max_length=20)),
                ('quantity', models.PositiveIntegerField()),
                ('unit_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('purchase_date', models.DateField()),
                ('adder_name', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('added_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='purchase_batches', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'purchase_batches',
                'ordering': ['-purchase_date', '-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Meter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('serial_number', models.CharField(max_length=100, unique=True)),
                ('type', models.CharField(choices=METER_TYPE_CHOICES, max_length=20)),
                ('status', models.CharField(choices=[('in_stock', 'In Stock'), ('with_agent', 'With Agent'), ('sold', 'Sold'), ('faulty', 'Faulty'), ('replaced', 'Replaced')], default='in_stock', max_length=20)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('adder_name', models.CharField(blank=True, max_length=255)),
                ('added_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('added_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='meters_added', to=settings.AUTH_USER_MODEL)),
                ('agent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='meters', to='agents.agent')),
                ('purchase_batch', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='meters', to='meters.purchasebatch')),
            ],
            options={
                'db_table': 'meters',
                'ordering': ['-added_at'],
                'indexes': [
                    models.Index(fields=['status', 'type'], name='idx_meter_status_type'),
                    models.Index(fields=['agent', 'status'], name='idx_meter_agent_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MinimumStockLevel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('meter_type', models.CharField(choices=METER_TYPE_CHOICES, max_length=20, unique=True)),
                ('minimum_level', models.PositiveIntegerField()),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'minimum_stock_levels',
                'ordering': ['meter_type'],
            },
        ),
    ]
