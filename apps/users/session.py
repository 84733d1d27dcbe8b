from dataclasses import dataclass
from typing import Any

from apps.scheduling.exceptions import ProfileRequired

from .models import ClientProfile, UserRole


@dataclass(frozen=True)
class Session:
    """Acting identity and role, resolved once per request."""

    user: Any
    role: str = UserRole.Role.USER

    @classmethod
    def for_user(cls, user) -> "Session":
        is_admin = UserRole.objects.filter(user=user, role=UserRole.Role.ADMIN).exists()
        return cls(user=user, role=UserRole.Role.ADMIN if is_admin else UserRole.Role.USER)

    @classmethod
    def from_request(cls, request) -> "Session":
        cached = getattr(request, "_salon_session", None)
        if cached is None:
            cached = cls.for_user(request.user)
            request._salon_session = cached
        return cached

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.Role.ADMIN

    def profile(self) -> ClientProfile:
        try:
            return ClientProfile.objects.get(user=self.user)
        except ClientProfile.DoesNotExist:
            raise ProfileRequired()
