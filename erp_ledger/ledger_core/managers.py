from django.db import models


# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to an organization
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_organization(self, organization):
        # accept an Organization instance or its primary key
        return self.filter(organization=organization)

    def active(self, organization):
        return self.filter(
            organization=organization,  # enforce tenant scoping
            is_active=True,  # only fetch active records
        )


# Attach TenantQuerySet to .objects
class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    # every model using TenantManager can call:
    # Invoice.objects.for_organization(org).get(pk=...)
    use_in_migrations = True


class JournalEntryLineQuerySet(TenantQuerySet):
    def for_organization(self, organization):
        # lines are scoped through their parent entry
        return self.filter(entry__organization=organization)

    def posted(self):
        # Entries that were ever posted contribute to balances.
        # A reversed original keeps its posted_at and is offset by its reversal.
        return self.filter(entry__posted_at__isnull=False)


class JournalEntryLineManager(models.Manager.from_queryset(JournalEntryLineQuerySet)):
    use_in_migrations = True
