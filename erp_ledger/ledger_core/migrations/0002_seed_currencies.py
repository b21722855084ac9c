from django.db import migrations

CURRENCIES = [
    # code, name, symbol, decimal_places
    ("EUR", "Euro", "€", 2),
    ("USD", "US Dollar", "$", 2),
    ("GBP", "Pound Sterling", "£", 2),
    ("CHF", "Swiss Franc", "CHF", 2),
    ("JPY", "Yen", "¥", 0),
]


def seed_currencies(apps, schema_editor):
    Currency = apps.get_model("ledger_core", "Currency")
    for code, name, symbol, places in CURRENCIES:
        Currency.objects.get_or_create(
            code=code,
            defaults={"name": name, "symbol": symbol, "decimal_places": places},
        )


class Migration(migrations.Migration):

    dependencies = [
        ("ledger_core", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_currencies, reverse_code=migrations.RunPython.noop),
    ]
