"""Repository classes for the CertKeeper persistence layer.

Each repository extends :class:`pypgkit.BaseRepository` with custom
query methods for the inventory domain.
"""

from certkeeper.repositories.certificate import CertificateRepository
from certkeeper.repositories.folder import FolderRepository
from certkeeper.repositories.user import RoleRepository, UserRepository

__all__ = [
    "CertificateRepository",
    "FolderRepository",
    "RoleRepository",
    "UserRepository",
]
