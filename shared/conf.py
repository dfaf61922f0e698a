# shared/conf.py
"""
Access to the LEDGER settings block with defaults.

    LEDGER = {
        'DEFAULT_CURRENCY': 'INR',
        'TOP_N_PARTIES': 5,
    }
"""
from django.conf import settings


DEFAULTS = {
    'DEFAULT_CURRENCY': 'INR',
    'TOP_N_PARTIES': 5,
    'IMPORT_PREVIEW_ROWS': 10,
    'IMPORT_PREVIEW_ERRORS': 20,
    'PAGE_SIZE': 50,
}


def ledger_setting(name):
    if name not in DEFAULTS:
        raise KeyError(f"Unknown LEDGER setting: {name}")
    return getattr(settings, 'LEDGER', {}).get(name, DEFAULTS[name])
