from django.db import transaction

from ..models import Sequence


def next_value(organization, key: str) -> int:
    """
    Atomically increment and return the counter `key` of an organization.
    Two concurrent callers never get the same value: the row stays
    locked until the enclosing transaction commits.
    """
    with transaction.atomic():
        seq, _ = Sequence.objects.select_for_update().get_or_create(
            organization=organization, key=key
        )
        seq.last_value += 1
        seq.save(update_fields=["last_value"])
        return seq.last_value


def next_number(organization, prefix: str, year: int, width: int = 4) -> str:
    """Document number like "INV-2025-0001"; every year restarts at 1"""
    value = next_value(organization, f"{prefix}:{year}")
    return f"{prefix}-{year}-{value:0{width}d}"
