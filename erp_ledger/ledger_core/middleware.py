from django.utils.deprecation import MiddlewareMixin

from .models import Organization

ORGANIZATION_HEADER = "HTTP_X_ORGANIZATION"
ACTOR_HEADER = "HTTP_X_ACTOR"


class OrganizationMiddleware(MiddlewareMixin):
    # Run on every request and attach .organization and .actor,
    # supplied by the calling layer which already authenticated the user
    def process_request(self, request):
        request.organization = None
        slug = request.META.get(ORGANIZATION_HEADER)
        if slug:
            # unknown slug → no organization, views answer 404
            request.organization = Organization.objects.filter(slug=slug).first()

        # Opaque actor id recorded in audit fields
        actor = request.META.get(ACTOR_HEADER)
        if not actor and getattr(request, "user", None) is not None and request.user.is_authenticated:
            actor = request.user.get_username()
        request.actor = actor or ""
