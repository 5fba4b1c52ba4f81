from django.utils.deprecation import MiddlewareMixin

from .context import BookContext
from .models import EntityMembership


class CurrentCompanyMiddleware(MiddlewareMixin):
    """Attach request.company and request.book (the BookContext) for the views.

    The user's default membership is used unless the session holds an
    "active_company_id" the user is an active member of.
    """

    def process_request(self, request):
        request.company = None
        request.book = None
        if not request.user.is_authenticated:
            return

        memberships = EntityMembership.objects.filter(
            user=request.user, is_active=True
        ).select_related("company")
        company_id = request.session.get("active_company_id")
        if company_id:
            # a tampered session id simply resolves to no company
            membership = memberships.filter(company_id=company_id).first()
        else:
            membership = memberships.order_by("-is_default", "pk").first()

        if membership is not None:
            request.company = membership.company
            request.book = BookContext(company=membership.company, user=request.user)
