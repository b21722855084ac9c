class TenantAdminMixin:
    """
    Enforce tenant isolation in Django admin.
    Uses request.organization (set by OrganizationMiddleware).
    Superusers see every organization.
    """

    # lookup from this model to its organization
    organization_lookup = "organization"

    def _get_request_organization(self, request):
        return getattr(request, "organization", None)

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        organization = self._get_request_organization(request)
        if organization is None:
            # If no organization available in request, return none
            return qs.none()
        return qs.filter(**{self.organization_lookup: organization})

    def formfield_for_foreignkey(self, db_field, request, **kwargs):
        """
        Restrict foreignkey dropdowns (account, journal, tax rate ...)
        to the current organization.
        """
        organization = self._get_request_organization(request)
        rel_model = getattr(db_field, "related_model", None)
        if not request.user.is_superuser and rel_model is not None:
            if db_field.name == "organization":
                kwargs["queryset"] = rel_model.objects.filter(
                    pk=getattr(organization, "pk", None)
                )
            elif any(f.name == "organization" for f in rel_model._meta.fields):
                if organization is not None:
                    kwargs["queryset"] = rel_model.objects.filter(organization=organization)
                else:
                    kwargs["queryset"] = rel_model.objects.none()
        return super().formfield_for_foreignkey(db_field, request, **kwargs)

    def save_model(self, request, obj, form, change):
        # Ensure object is always owned by the organization on save (unless superuser)
        organization = self._get_request_organization(request)
        if not request.user.is_superuser and organization is not None and hasattr(obj, "organization_id"):
            obj.organization = organization
        super().save_model(request, obj, form, change)
