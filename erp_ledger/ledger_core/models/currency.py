from decimal import ROUND_HALF_UP, Decimal

from django.db import models  # ORM base classes to define database tables as Python classes


# ---------- Currency ----------
class Currency(models.Model):  # Store a list of valid currencies
    """
    ISO currencies. Use the currency FK in other tables instead of free-text.
    decimal_places is the minor-unit precision every balance is compared at.
    """

    # Set code as the primary key, so it uniquely identifies a currency
    code = models.CharField(max_length=3, primary_key=True)  # 'USD', 'EUR'
    # Human-readable name of the currency
    name = models.CharField(max_length=64)  # 'Euro'
    # Nullable display symbol ("$", "€", "¥")
    symbol = models.CharField(max_length=8, blank=True, null=True)
    # Avoid mistakes like storing 12.345 for JPY (which has no sub-units)
    decimal_places = models.PositiveSmallIntegerField(default=2)

    class Meta:
        # Make admin display plural as “currencies” instead of default “currencys”
        verbose_name_plural = "currencies"

    def __str__(self):
        return f"{self.code} ({self.symbol or ''})"

    @property
    def minor_unit(self):
        # 2 places → Decimal("0.01"), 0 places → Decimal("1")
        return Decimal(1).scaleb(-self.decimal_places)

    def quantize(self, amount):
        """Round an amount to this currency's minor unit."""
        return Decimal(amount or 0).quantize(self.minor_unit, rounding=ROUND_HALF_UP)
