from django.apps import AppConfig


class ScriptTagsConfig(AppConfig):
    name = "django_script_tags"
    default_auto_field = "django.db.models.AutoField"

    # This is the code that gets run when user adds django_script_tags
    # to Django's INSTALLED_APPS
    def ready(self) -> None:
        from django_script_tags.modes import MODE_DETAILS, check_mode_details  # noqa: PLC0415

        check_mode_details(MODE_DETAILS)
