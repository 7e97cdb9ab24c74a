"""
Hashing service for content-identity comparison.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional

import xxhash


DEFAULT_CHUNK_SIZE = 65536


class HashAlgorithm(Enum):
    """Supported hash algorithms."""
    SHA256 = auto()
    SHA512 = auto()
    BLAKE2B = auto()
    XXH64 = auto()  # Fast non-cryptographic hash

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_string(cls, value: str) -> 'HashAlgorithm':
        """Create from a setting string, defaulting to SHA-256."""
        try:
            return cls[value.strip().upper()]
        except (KeyError, AttributeError):
            return cls.SHA256


@dataclass
class HashResult:
    """Result of a hash operation."""
    algorithm: HashAlgorithm
    hash_hex: str
    file_size: int

    def matches(self, other: 'HashResult') -> bool:
        """Check if this hash matches another."""
        return (self.algorithm == other.algorithm and
                self.hash_hex == other.hash_hex)


class HashingService:
    """Computes file digests by streaming fixed-size chunks."""

    def __init__(
        self,
        default_algorithm: HashAlgorithm = HashAlgorithm.SHA256,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        self.default_algorithm = default_algorithm
        self.chunk_size = chunk_size

    def hash_file(
        self,
        path: Path | str,
        algorithm: Optional[HashAlgorithm] = None
    ) -> HashResult:
        """
        Compute the digest of a file.

        Raises:
            OSError: if the file cannot be opened or read.
        """
        algorithm = algorithm or self.default_algorithm
        hasher = self._create_hasher(algorithm)
        size = 0

        with open(path, 'rb') as f:
            while chunk := f.read(self.chunk_size):
                hasher.update(chunk)
                size += len(chunk)

        return HashResult(
            algorithm=algorithm,
            hash_hex=hasher.hexdigest(),
            file_size=size
        )

    def files_match(
        self,
        path1: Path | str,
        path2: Path | str,
        algorithm: Optional[HashAlgorithm] = None
    ) -> bool:
        """Compare two files by digest. Read errors propagate."""
        hash1 = self.hash_file(path1, algorithm)
        hash2 = self.hash_file(path2, algorithm)
        return hash1.matches(hash2)

    def _create_hasher(self, algorithm: HashAlgorithm):
        """Create a hasher for the given algorithm."""
        if algorithm == HashAlgorithm.SHA256:
            return hashlib.sha256()
        elif algorithm == HashAlgorithm.SHA512:
            return hashlib.sha512()
        elif algorithm == HashAlgorithm.BLAKE2B:
            return hashlib.blake2b()
        elif algorithm == HashAlgorithm.XXH64:
            return xxhash.xxh64()
        else:
            raise ValueError(f"Unknown algorithm: {algorithm}")
