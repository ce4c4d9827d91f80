import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Route',
            fields=[
                ('code', models.CharField(max_length=32, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100)),
                ('origin', models.CharField(blank=True, default='', max_length=100)),
                ('destination', models.CharField(blank=True, default='', max_length=100)),
                ('stoppages', models.JSONField(blank=True, default=list)),
                ('color', models.CharField(blank=True, default='', max_length=16)),
                ('path', models.TextField(blank=True, default='')),
                ('polyline', models.TextField(blank=True, default='')),
            ],
        ),
        migrations.CreateModel(
            name='Vehicle',
            fields=[
                ('code', models.CharField(max_length=32, primary_key=True, serialize=False)),
                ('operator', models.CharField(max_length=100)),
                ('coach_type', models.CharField(blank=True, default='', max_length=50)),
                ('license_plate', models.CharField(blank=True, default='', max_length=20)),
                ('capacity', models.PositiveIntegerField()),
                ('base_price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('origin', models.CharField(blank=True, default='', max_length=100)),
                ('destination', models.CharField(blank=True, default='', max_length=100)),
                ('departure_time', models.TimeField(blank=True, null=True)),
                ('arrival_time', models.TimeField(blank=True, null=True)),
                ('is_disabled', models.BooleanField(default=False)),
                ('route', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='vehicles', to='fleet.route')),
            ],
        ),
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('booking_id', models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ('owner_id', models.CharField(db_index=True, max_length=64)),
                ('route_code', models.CharField(blank=True, default='', max_length=32)),
                ('travel_date', models.DateField()),
                ('seats', models.JSONField()),
                ('passengers', models.JSONField()),
                ('total_fare', models.DecimalField(decimal_places=2, max_digits=12)),
                ('status', models.CharField(choices=[('Confirmed', 'Confirmed'), ('Cancelled', 'Cancelled')], default='Confirmed', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('vehicle', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='fleet.vehicle')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='VehiclePosition',
            fields=[
                ('vehicle', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='position', serialize=False, to='fleet.vehicle')),
                ('route_code', models.CharField(blank=True, default='', max_length=32)),
                ('latitude', models.FloatField()),
                ('longitude', models.FloatField()),
                ('waypoint_index', models.PositiveIntegerField(default=0)),
                ('progress', models.FloatField(default=0.0)),
                ('updated_at', models.DateTimeField()),
            ],
        ),
        migrations.AddConstraint(
            model_name='booking',
            constraint=models.UniqueConstraint(fields=('owner_id', 'booking_id'), name='fleet_booking_owner_booking_id'),
        ),
    ]
