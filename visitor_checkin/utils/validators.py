# =======================================================================================
# visitor_checkin/utils/validators.py - Validation Helpers
# =======================================================================================
import re
from typing import Any
from .exceptions import InvalidIdentifierError

MAX_BARCODE_LENGTH = 100

# Barcodes are generated codes or UUIDs; anything else is a misread.
_BARCODE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:\-]*$")


class BarcodeValidator:
    """Validates scanned identifiers before they reach the directory."""

    @staticmethod
    def normalize(identifier: Any) -> str:
        """Return the trimmed barcode or raise InvalidIdentifierError."""
        if not isinstance(identifier, str):
            raise InvalidIdentifierError("Barcode must be a string")

        barcode = identifier.strip()
        if not barcode:
            raise InvalidIdentifierError("Barcode is empty")

        if len(barcode) > MAX_BARCODE_LENGTH:
            raise InvalidIdentifierError(f"Barcode longer than {MAX_BARCODE_LENGTH} characters")

        if not _BARCODE_RE.match(barcode):
            raise InvalidIdentifierError("Barcode contains unsupported characters")

        return barcode

    @classmethod
    def is_valid(cls, identifier: Any) -> bool:
        try:
            cls.normalize(identifier)
        except InvalidIdentifierError:
            return False
        return True
