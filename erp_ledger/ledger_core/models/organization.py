from django.conf import settings
from django.db import models


# ---------- Tenant / Organization ----------
class Organization(models.Model):
    """Tenant. Every ledger row belongs to exactly one organization."""

    # Store organization's full display name
    name = models.CharField(max_length=200)

    slug = models.SlugField(  # A URL-friendly identifier
        max_length=80, unique=True  # no two organizations can share a slug
    )

    # Functional currency used by entries created without an explicit one
    default_currency = models.ForeignKey(
        "Currency",
        # don’t allow deleting a currency that an organization depends on
        on_delete=models.PROTECT,
        related_name="organizations",
    )

    # Store timestamp when the record is first created
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("name",)

    def __str__(self):
        return self.name

    @classmethod
    def create_with_defaults(cls, name, slug, currency_code=None):
        """Create an organization, creating its currency row if missing."""
        from .currency import Currency

        code = currency_code or settings.DEFAULT_CURRENCY
        currency, _ = Currency.objects.get_or_create(code=code, defaults={"name": code})
        return cls.objects.create(name=name, slug=slug, default_currency=currency)
