# onboarding_app/context.py
from dataclasses import dataclass
from typing import Optional

ADMIN = 'ADMIN'
CLIENT = 'CLIENT'
CPA = 'CPA'
SERVICE_CENTER = 'SERVICE_CENTER'


@dataclass(frozen=True)
class RequestContext:
    """
    Who is asking, resolved once per request.

    Every data-access call takes one of these instead of reading a global
    "current role" or "current client", so the same query code serves all four
    portals.
    """
    role: str
    user_id: Optional[int] = None
    client_id: Optional[int] = None

    @classmethod
    def from_request(cls, request):
        user = request.user
        return cls(
            role=getattr(user, 'role', None) or CLIENT,
            user_id=user.pk,
            client_id=getattr(user, 'client_id', None),
        )

    def scope_clients(self, queryset):
        if self.role == ADMIN:
            return queryset
        if self.role == CPA:
            return queryset.filter(cpa_id=self.user_id)
        if self.role == SERVICE_CENTER:
            return queryset.filter(service_center_id=self.user_id)
        if self.client_id is None:
            return queryset.none()
        return queryset.filter(pk=self.client_id)

    def scope_tasks(self, queryset):
        if self.role == ADMIN:
            return queryset
        if self.role == CPA:
            return queryset.filter(client__cpa_id=self.user_id, assigned_to_role=CPA)
        if self.role == SERVICE_CENTER:
            return queryset.filter(client__service_center_id=self.user_id, assigned_to_role=SERVICE_CENTER)
        if self.client_id is None:
            return queryset.none()
        return queryset.filter(client_id=self.client_id)

    def scope_by_client(self, queryset, field='client'):
        """Narrow any client-owned queryset (stages, documents, audit entries)."""
        if self.role == ADMIN:
            return queryset
        if self.role == CPA:
            return queryset.filter(**{f'{field}__cpa_id': self.user_id})
        if self.role == SERVICE_CENTER:
            return queryset.filter(**{f'{field}__service_center_id': self.user_id})
        if self.client_id is None:
            return queryset.none()
        return queryset.filter(**{f'{field}_id': self.client_id})
