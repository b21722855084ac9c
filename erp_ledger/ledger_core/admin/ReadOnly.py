from django.contrib import admin
from django.core.exceptions import PermissionDenied


class ReadOnlyAdmin(admin.ModelAdmin):
    """
    Admin for rows owned by the ledger services (invoices, payments,
    audit trail). Fields are displayed, never edited; the only way to
    change such a row from the admin is an action declared on the subclass,
    which calls the matching service.
    """

    list_per_page = 50

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields] + list(super().get_readonly_fields(request, obj))

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        raise PermissionDenied(f"{obj._meta.verbose_name} rows are changed through the ledger services only.")

    def get_actions(self, request):
        # drop delete_selected, keep the service actions of the subclass
        actions = super().get_actions(request)
        actions.pop("delete_selected", None)
        return actions
