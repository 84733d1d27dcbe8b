import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("users", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Pet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("breed", models.CharField(blank=True, max_length=120)),
                ("age", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "weight",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=5,
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("color", models.CharField(blank=True, max_length=60)),
                ("gender", models.CharField(blank=True, choices=[("male", "Male"), ("female", "Female")], max_length=10)),
                ("photo_url", models.URLField(blank=True, max_length=500)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pets",
                        to="users.clientprofile",
                    ),
                ),
            ],
            options={
                "db_table": "pets",
                "ordering": ["name", "id"],
            },
        ),
    ]
