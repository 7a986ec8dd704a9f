"""
Create the standard stock locations.

MAIN is our own warehouse. AMAZON_FBA and MELI_FULL are marketplace
fulfillment centers whose physical stock we do not handle.
"""

from django.db import migrations


LOCATIONS = [
    {
        'code': 'MAIN',
        'name': 'Main warehouse',
        'kind': 'WAREHOUSE',
        'is_virtual': False,
    },
    {
        'code': 'AMAZON_FBA',
        'name': 'Amazon FBA',
        'kind': 'FBA',
        'is_virtual': True,
    },
    {
        'code': 'MELI_FULL',
        'name': 'Mercado Libre Full',
        'kind': 'FULFILLMENT_CENTER',
        'is_virtual': True,
    },
]


def create_initial_locations(apps, schema_editor):
    Location = apps.get_model('kardex', 'Location')

    for data in LOCATIONS:
        Location.objects.get_or_create(code=data['code'], defaults=data)


def remove_initial_locations(apps, schema_editor):
    """Remove initial locations (for reverse migration)."""
    Location = apps.get_model('kardex', 'Location')
    Location.objects.filter(code__in=[data['code'] for data in LOCATIONS]).delete()


class Migration(migrations.Migration):
    """Create the standard stock locations."""

    dependencies = [
        ('kardex', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_initial_locations, remove_initial_locations),
    ]
