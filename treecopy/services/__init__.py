"""
Supporting services: content hashing and persisted settings.
"""

from treecopy.services.hashing import (
    HashAlgorithm,
    HashingService,
    HashResult,
)
from treecopy.services.settings import (
    ApplicationSettings,
    SettingsManager,
    SyncSettings,
    resolve_existing_directory,
)

__all__ = [
    # Hashing
    'HashAlgorithm',
    'HashingService',
    'HashResult',
    # Settings
    'ApplicationSettings',
    'SettingsManager',
    'SyncSettings',
    'resolve_existing_directory',
]
