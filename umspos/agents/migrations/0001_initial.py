import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Agent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('phone_number', models.CharField(max_length=20, unique=True)),
                ('location', models.CharField(max_length=255)),
                ('county', models.CharField(blank=True, max_length=50, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'agents',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='AgentTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_type', models.CharField(choices=[('assignment', 'Assignment'), ('return', 'Return'), ('sale', 'Sale')], max_length=20)),
                ('meter_type', models.CharField(choices=[('integrated', 'Integrated'), ('split', 'Split'), ('gas', 'Gas'), ('water', 'Water'), ('smart', 'Smart'), ('3 phase', '3 Phase')], max_length=20)),
                ('quantity', models.PositiveIntegerField()),
                ('reference_number', models.CharField(blank=True, max_length=50, null=True)),
                ('performer_name', models.CharField(blank=True, max_length=255)),
                ('transaction_date', models.DateTimeField(auto_now_add=True)),
                ('agent', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transactions', to='agents.agent')),
                ('performed_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='agent_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'agent_transactions',
                'ordering': ['-transaction_date'],
                'indexes': [models.Index(fields=['agent', '-transaction_date'], name='idx_agenttx_agent_date')],
            },
        ),
    ]
