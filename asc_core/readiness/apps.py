from django.apps import AppConfig


class ReadinessConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "asc_core.readiness"

    def ready(self):
        from asc_core.readiness import subscribers  # noqa: F401
