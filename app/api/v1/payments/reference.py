"""
Transaction reference generation.
Format: PREFIX-YYYYMMDD-12 random uppercase alphanumerics, e.g. UNI-20261017-7KQ2M9XA1B4C.
Safe to show to students; uniqueness is backed by the unique column.
"""

import secrets
import string
from datetime import datetime, timezone

RANDOM_PART_LENGTH = 12
_ALPHABET = string.ascii_uppercase + string.digits


def generate_transaction_reference(prefix: str = "UNI") -> str:
    date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(RANDOM_PART_LENGTH))
    return f"{prefix.strip().upper()}-{date_part}-{random_part}"
