from django.core.validators import MinValueValidator
from django.db import models

from apps.users.models import ClientProfile


class Pet(models.Model):
    class Gender(models.TextChoices):
        MALE = "male", "Male"
        FEMALE = "female", "Female"

    owner = models.ForeignKey(ClientProfile, on_delete=models.CASCADE, related_name="pets")
    name = models.CharField(max_length=120)
    breed = models.CharField(max_length=120, blank=True)
    age = models.PositiveSmallIntegerField(null=True, blank=True)
    weight = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    color = models.CharField(max_length=60, blank=True)
    gender = models.CharField(max_length=10, choices=Gender.choices, blank=True)
    photo_url = models.URLField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "pets"
        ordering = ["name", "id"]

    def __str__(self):
        return self.name
