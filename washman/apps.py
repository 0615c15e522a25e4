from django.apps import AppConfig


class WashmanConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "washman"
    verbose_name = "Washman - Vehicle Loyalty"

    def ready(self):
        # Connect visit_completed -> LoyaltyEngine.register_visit
        from washman import handlers  # noqa: F401
