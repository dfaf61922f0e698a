from .base import BaseCsvImporter
from .transactions import TransactionImporter

__all__ = ['BaseCsvImporter', 'TransactionImporter']
