from contextlib import contextmanager

from django.core.exceptions import ValidationError
from django.db import IntegrityError

from ..exceptions import LedgerValidationError


def describe(error: ValidationError) -> str:
    """Flatten a (possibly per-field) ValidationError into one line."""
    if hasattr(error, "message_dict"):
        return "; ".join(
            f"{field}: {' '.join(messages)}" if field != "__all__" else " ".join(messages)
            for field, messages in error.message_dict.items()
        )
    return " ".join(error.messages)


@contextmanager
def model_errors():
    """
    Model guards (full_clean() in save(), DB constraints) raise Django errors.
    Re-raise them as LedgerValidationError so callers only ever see ledger errors.
    Wrap outside transaction.atomic() blocks: the failed block rolls back first.
    """
    try:
        yield
    except ValidationError as e:
        raise LedgerValidationError(describe(e)) from e
    except IntegrityError as e:
        raise LedgerValidationError(f"Rejected by a database constraint: {e}") from e
