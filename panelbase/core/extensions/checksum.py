"""SHA-256 verification of installed files"""

import hashlib
import logging
from pathlib import Path
from typing import Union

from panelbase.core.extensions.exceptions import ChecksumMismatchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192  # 8KB chunks


class ChecksumVerifier:
    """Hashes the exact bytes of a file as written to disk.

    No line-ending normalization is applied. Content that must hash the
    same on every platform has to be normalized before it is published.
    """

    @staticmethod
    def calculate_sha256(file_path: Union[str, Path]) -> str:
        """
        Calculate SHA256 hash of a file

        Args:
            file_path: Path to file

        Returns:
            Lowercase hex SHA256 digest
        """
        sha256_hash = hashlib.sha256()
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                sha256_hash.update(chunk)
        return sha256_hash.hexdigest()

    @classmethod
    def verify(cls, file_path: Union[str, Path], expected_hex: str) -> None:
        """
        Compare a file's SHA256 against an expected digest

        Args:
            file_path: Path to file
            expected_hex: Expected lowercase hex digest

        Raises:
            ChecksumMismatchError: If the digests differ
        """
        actual = cls.calculate_sha256(file_path)
        if actual != expected_hex:
            raise ChecksumMismatchError(str(file_path), expected_hex, actual)
        logger.debug(f"SHA256 verification passed for {file_path}: {actual}")
