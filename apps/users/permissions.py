from rest_framework.permissions import BasePermission

from .session import Session


class IsSalonAdmin(BasePermission):
    message = "Administrator role required."

    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and Session.from_request(request).is_admin
        )
