"""
Centralised ID generation for CAIRN.
"""

import secrets
import uuid
from typing import Literal, Optional


IDFormat = Literal["hex32", "uuid4"]


class IDGenerator:
    """
    Single source of identifiers.

    Chunk ids, error ids and span ids all come from here so their format is
    consistent across logs and responses.
    """

    DEFAULT_FORMAT: IDFormat = "hex32"

    @staticmethod
    def generate(format: Optional[IDFormat] = None) -> str:
        """
        Generates an ID in the requested format.

        Examples:
            >>> IDGenerator.generate("hex32")
            'a3f4b2c1d5e6f7a8b9c0d1e2f3a4b5c6'

            >>> IDGenerator.generate("uuid4")
            '550e8400-e29b-41d4-a716-446655440000'
        """
        if format is None:
            format = IDGenerator.DEFAULT_FORMAT

        if format == "hex32":
            return secrets.token_hex(16)
        elif format == "uuid4":
            return str(uuid.uuid4())
        else:
            raise ValueError(f"Unsupported ID format: {format}")

    @staticmethod
    def is_valid_id(id_str: str, format: Optional[IDFormat] = None) -> bool:
        """
        Checks whether a string is a valid ID.

        Args:
            id_str: String to validate
            format: Expected format (None to auto-detect)
        """
        if not id_str:
            return False

        try:
            if format == "uuid4" or (format is None and "-" in id_str):
                uuid.UUID(id_str)
                return True
            clean = id_str.replace("-", "").lower()
            return len(clean) == 32 and all(c in "0123456789abcdef" for c in clean)
        except (ValueError, TypeError):
            return False


def generate_id(format: Optional[IDFormat] = None) -> str:
    """Alias for IDGenerator.generate()."""
    return IDGenerator.generate(format)


def is_valid_id(id_str: str) -> bool:
    """Alias for IDGenerator.is_valid_id()."""
    return IDGenerator.is_valid_id(id_str)
