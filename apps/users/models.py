from django.conf import settings
from django.db import models


class ClientProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="client_profile"
    )
    full_name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    tax_id = models.CharField(max_length=14)
    phone = models.CharField(max_length=20)

    # address
    street = models.CharField(max_length=200)
    number = models.CharField(max_length=20)
    neighborhood = models.CharField(max_length=120)
    city = models.CharField(max_length=120)
    state = models.CharField(max_length=60)
    postal_code = models.CharField(max_length=20)

    # emergency contact
    emergency_name = models.CharField(max_length=200)
    emergency_phone = models.CharField(max_length=20)
    emergency_relationship = models.CharField(max_length=60)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "profiles"
        ordering = ["full_name", "id"]

    def __str__(self):
        return self.full_name

    @property
    def contact_email(self) -> str:
        return self.email or self.user.email


class UserRole(models.Model):
    class Role(models.TextChoices):
        ADMIN = "admin", "Administrator"
        USER = "user", "User"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="roles"
    )
    role = models.CharField(max_length=10, choices=Role.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "user_roles"
        constraints = [
            models.UniqueConstraint(fields=["user", "role"], name="uniq_user_role"),
        ]
