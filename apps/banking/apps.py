# apps/banking/apps.py
from django.apps import AppConfig


class BankingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.banking'
    label = 'banking'
