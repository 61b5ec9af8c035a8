import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models

METER_TYPE_CHOICES = [('integrated', 'Integrated'), ('split', 'Split'), ('gas', 'Gas'), ('water', 'Water'), ('smart', 'Smart'), ('3 phase', '3 Phase')]

CUSTOMER_TYPE_CHOICES = [('walk in', 'Walk In'), ('agent', 'Agent'), ('technician', 'Technician'), ('referal', 'Referal'), ('online', 'Online')]

COUNTY_CHOICES = [(county, county) for county in [
    "Baringo", "Bomet", "Bungoma", "Busia", "Elgeyo Marakwet",
    "Embu", "Garissa", "Homa Bay", "Isiolo", "Kajiado",
    "Kakamega", "Kericho", "Kiambu", "Kilifi", "Kirinyaga",
    "Kisii", "Kisumu", "Kitui", "Kwale", "Laikipia",
    "Lamu", "Machakos", "Makueni", "Mandera", "Marsabit",
    "Meru", "Migori", "Mombasa", "Murang'a", "Nairobi",
    "Nakuru", "Nandi", "Narok", "Nyamira", "Nyandarua",
    "Nyeri", "Samburu", "Siaya", "Taita Taveta", "Tana River",
    "Tharaka Nithi", "Trans Nzoia", "Turkana", "Uasin Gishu",
    "Vihiga", "Wajir", "West Pokot",
]]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('meters', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SalesTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference_number', models.CharField(max_length=30, unique=True)),
                ('user_name', models.CharField(max_length=255)),
                ('sale_date', models.DateTimeField()),
                ('destination', models.CharField(max_length=255)),
                ('recipient', models.CharField(max_length=255)),
                ('customer_type', models.CharField(choices=CUSTOMER_TYPE_CHOICES, default='walk in', max_length=20)),
                ('customer_county', models.CharField(blank=True, choices=COUNTY_CHOICES, max_length=50, null=True)),
                ('customer_contact', models.CharField(blank=True, max_length=50, null=True)),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sales_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sales_transactions',
                'ordering': ['-sale_date', '-id'],
            },
        ),
        migrations.CreateModel(
            name='SaleBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('user_name', models.CharField(max_length=255)),
                ('meter_type', models.CharField(choices=METER_TYPE_CHOICES, max_length=20)),
                ('batch_amount', models.PositiveIntegerField()),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('total_price', models.DecimalField(decimal_places=2, max_digits=14)),
                ('destination', models.CharField(max_length=255)),
                ('recipient', models.CharField(max_length=255)),
                ('customer_type', models.CharField(choices=CUSTOMER_TYPE_CHOICES, default='walk in', max_length=20)),
                ('customer_county', models.CharField(blank=True, choices=COUNTY_CHOICES, max_length=50, null=True)),
                ('customer_contact', models.CharField(blank=True, max_length=50, null=True)),
                ('sale_date', models.DateTimeField()),
                ('transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='batches', to='sales.salestransaction')),
                ('user', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sale_batches', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sale_batches',
                'ordering': ['-sale_date', '-id'],
                'indexes': [
                    models.Index(fields=['sale_date'], name='idx_salebatch_date'),
                    models.Index(fields=['meter_type'], name='idx_salebatch_type'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SoldMeter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('serial_number', models.CharField(db_index=True, max_length=100)),
                ('seller_name', models.CharField(blank=True, max_length=255)),
                ('sold_at', models.DateTimeField()),
                ('destination', models.CharField(max_length=255)),
                ('recipient', models.CharField(max_length=255)),
                ('customer_type', models.CharField(choices=CUSTOMER_TYPE_CHOICES, default='walk in', max_length=20)),
                ('customer_county', models.CharField(blank=True, choices=COUNTY_CHOICES, max_length=50, null=True)),
                ('customer_contact', models.CharField(blank=True, max_length=50, null=True)),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('status', models.CharField(choices=[('sold', 'Sold'), ('returned', 'Returned'), ('faulty', 'Faulty'), ('replaced', 'Replaced')], default='sold', max_length=20)),
                ('replacement_serial', models.CharField(blank=True, max_length=100, null=True)),
                ('replacement_date', models.DateTimeField(blank=True, null=True)),
                ('replacement_by', models.CharField(blank=True, max_length=255, null=True)),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sold_meters', to='sales.salebatch')),
                ('meter', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sales', to='meters.meter')),
                ('sold_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='meters_sold', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sold_meters',
                'ordering': ['-sold_at', '-id'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'sold')), fields=('meter',), name='uniq_active_sale_per_meter'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FaultyReturn',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('serial_number', models.CharField(db_index=True, max_length=100)),
                ('meter_type', models.CharField(choices=METER_TYPE_CHOICES, max_length=20)),
                ('returner_name', models.CharField(blank=True, max_length=255)),
                ('returned_at', models.DateTimeField(auto_now_add=True)),
                ('fault_description', models.TextField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('repaired', 'Repaired'), ('unrepairable', 'Unrepairable')], default='pending', max_length=20)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('meter', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='faulty_returns', to='meters.meter')),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('returned_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='faulty_returns', to=settings.AUTH_USER_MODEL)),
                ('sold_meter', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='faulty_returns', to='sales.soldmeter')),
            ],
            options={
                'db_table': 'faulty_returns',
                'ordering': ['-returned_at', '-id'],
            },
        ),
    ]
