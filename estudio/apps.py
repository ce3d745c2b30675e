from django.apps import AppConfig


class EstudioConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'estudio'
    verbose_name = 'Estúdio'
