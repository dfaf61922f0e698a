import csv
import io
import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from shared.conf import ledger_setting
from shared.exceptions import NotFound

logger = logging.getLogger(__name__)


class BaseCsvImporter:
    """
    Base class for two-step CSV imports: preview, then commit.

    preview() parses and validates the file and stages the valid rows in an
    ImportBatch. commit() takes the batch token and writes the rows. A
    committed batch keeps its result, so committing the same token again
    returns that result without writing anything.

    Subclasses must implement:
    - required_columns: list of required CSV column headers
    - validate_row(row_num, row): return list of error strings
    - process_row(row_num, row, batch): write the row; return None on
      success or a reason string when the row is skipped
    """
    required_columns = []

    def __init__(self, user, entities):
        self.user = user
        self.entities = list(entities)

    def load_csv(self, file):
        """
        Parse uploaded CSV file into list of dicts.
        Handles both InMemoryUploadedFile and regular file objects.
        """
        if hasattr(file, 'read'):
            content = file.read()
            if isinstance(content, bytes):
                try:
                    content = content.decode('utf-8-sig')
                except UnicodeDecodeError:
                    raise ValidationError('File is not valid UTF-8 CSV.')
        else:
            content = file

        reader = csv.DictReader(io.StringIO(content))
        rows = list(reader)
        return rows, reader.fieldnames or []

    def check_columns(self, fieldnames):
        """Verify required columns are present in CSV."""
        missing = [col for col in self.required_columns if col not in fieldnames]
        return missing

    def validate_row(self, row_num, row):
        raise NotImplementedError

    def process_row(self, row_num, row, batch):
        raise NotImplementedError

    # ===== PREVIEW =====

    def preview(self, file, file_name=''):
        """
        Validate a file and stage its valid rows.

        Returns:
            dict: {
                'total_rows': int,
                'valid_rows': int,
                'invalid_rows': int,
                'preview': [row, ...],              # first IMPORT_PREVIEW_ROWS
                'errors': [{'row': int, 'errors': [str]}, ...],  # first IMPORT_PREVIEW_ERRORS
                'temp_file_path': str,              # token for commit()
            }
        """
        from apps.banking.models import ImportBatch

        rows, fieldnames = self.load_csv(file)

        missing = self.check_columns(fieldnames)
        if missing:
            errors = [{'row': 1, 'errors': [f"Missing required columns: {', '.join(missing)}"]}]
            valid = []
        else:
            valid, errors = [], []
            for i, row in enumerate(rows, start=2):  # Row 2 = first data row (1 = header)
                row = {k: (v.strip() if v else '') for k, v in row.items() if k}
                row_errors = self.validate_row(i, row)
                if row_errors:
                    errors.append({'row': i, 'errors': row_errors})
                else:
                    valid.append({**row, 'row_number': i})

        batch = ImportBatch.objects.create(
            file_name=file_name or getattr(file, 'name', ''),
            rows=valid,
            errors=errors,
            total_rows=len(rows),
            created_by=self.user,
        )
        logger.info(
            'Staged import %s: %s rows, %s valid, %s invalid',
            batch.token, len(rows), len(valid), len(errors),
        )
        return {
            'total_rows': len(rows),
            'valid_rows': len(valid),
            'invalid_rows': len(errors),
            'preview': valid[:ledger_setting('IMPORT_PREVIEW_ROWS')],
            'errors': errors[:ledger_setting('IMPORT_PREVIEW_ERRORS')],
            'temp_file_path': str(batch.token),
        }

    # ===== COMMIT =====

    def commit(self, token):
        """
        Write a staged batch.

        Returns:
            dict: {'imported': int, 'skipped': int, 'skipped_rows': [{'row', 'reason'}]}

        Raises:
            NotFound: Unknown token, or a batch staged by another user
        """
        from apps.banking.models import ImportBatch

        with transaction.atomic():
            try:
                batch = ImportBatch.objects.select_for_update().get(token=token)
            except (ImportBatch.DoesNotExist, ValueError, ValidationError):
                raise NotFound(f"Import batch {token} not found", model='ImportBatch')
            if batch.created_by_id != getattr(self.user, 'pk', None) and not getattr(self.user, 'is_superuser', False):
                raise NotFound(f"Import batch {token} not found", model='ImportBatch')

            if batch.status == 'committed':
                logger.info('Import %s already committed; returning stored result', batch.token)
                return batch.result

            imported = 0
            skipped = []
            for row in batch.rows:
                row_num = row.get('row_number')
                try:
                    with transaction.atomic():
                        reason = self.process_row(row_num, row, batch)
                except ValidationError as e:
                    reason = "; ".join(e.messages)
                except (IntegrityError, ValueError, ArithmeticError) as e:
                    reason = str(e)
                if reason:
                    skipped.append({'row': row_num, 'reason': reason})
                else:
                    imported += 1

            batch.result = {
                'imported': imported,
                'skipped': len(skipped),
                'skipped_rows': skipped,
            }
            batch.status = 'committed'
            batch.committed_at = timezone.now()
            batch.save(update_fields=['result', 'status', 'committed_at', 'updated_at'])

        self.post_process(batch)
        logger.info('Committed import %s: %s imported, %s skipped', batch.token, imported, len(skipped))
        return batch.result

    def post_process(self, batch):
        """
        Optional hook called after a batch commits.
        Override for bulk follow-up work (e.g., recomputing balances).
        """
        pass
