# shared/values.py
"""
Typed value objects for nested records stored as flat columns.

Models expose these through properties; updates go through the builders so
that field names are checked instead of written through arbitrary paths.
"""
import re
from dataclasses import asdict, dataclass, fields, replace

from django.core.exceptions import ValidationError


IFSC_RE = re.compile(r'^[A-Z]{4}0[A-Z0-9]{6}$')


def _from_mapping(cls, data):
    if data is None:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValidationError(
            f"Unknown {cls.__name__} field(s): {', '.join(sorted(unknown))}"
        )
    return cls(**{k: str(v or '').strip() for k, v in data.items()})


@dataclass(frozen=True)
class Address:
    street: str = ''
    city: str = ''
    state: str = ''
    pincode: str = ''
    country: str = 'India'

    @classmethod
    def from_mapping(cls, data):
        return _from_mapping(cls, data)

    @classmethod
    def from_model(cls, obj, prefix='address_'):
        return cls(**{f.name: getattr(obj, f'{prefix}{f.name}') for f in fields(cls)})

    def apply_to(self, obj, prefix='address_'):
        for key, value in asdict(self).items():
            setattr(obj, f'{prefix}{key}', value)

    def with_changes(self, **changes):
        return replace(self, **changes)

    def as_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class BankDetails:
    account_name: str = ''
    account_number: str = ''
    bank_name: str = ''
    ifsc_code: str = ''

    @classmethod
    def from_mapping(cls, data):
        details = _from_mapping(cls, data)
        return replace(details, ifsc_code=details.ifsc_code.upper())

    @classmethod
    def from_model(cls, obj, prefix='bank_'):
        return cls(**{f.name: getattr(obj, f'{prefix}{f.name}') for f in fields(cls)})

    def apply_to(self, obj, prefix='bank_'):
        for key, value in asdict(self).items():
            setattr(obj, f'{prefix}{key}', value)

    def is_empty(self):
        return not any(asdict(self).values())

    def validate(self):
        """Raise ValidationError with per-field messages for incomplete details."""
        errors = {}
        if not self.account_number:
            errors['account_number'] = 'Account number is required.'
        elif not self.account_number.isdigit() or not 9 <= len(self.account_number) <= 18:
            errors['account_number'] = 'Account number must be 9-18 digits.'
        if not self.bank_name:
            errors['bank_name'] = 'Bank name is required.'
        if not self.ifsc_code:
            errors['ifsc_code'] = 'IFSC code is required.'
        elif not IFSC_RE.match(self.ifsc_code):
            errors['ifsc_code'] = 'Invalid IFSC code format.'
        if errors:
            raise ValidationError(errors)

    def as_dict(self):
        return asdict(self)
