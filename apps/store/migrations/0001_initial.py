from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Setting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=100, unique=True)),
                ("value", models.JSONField(blank=True, null=True)),
                (
                    "category",
                    models.CharField(
                        choices=[("general", "General"), ("shipping", "Shipping"), ("payment", "Payment"), ("seo", "SEO")],
                        db_index=True,
                        default="general",
                        max_length=20,
                    ),
                ),
                ("description", models.CharField(blank=True, max_length=255)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "settings",
                "ordering": ["category", "key"],
            },
        ),
    ]
