"""Application services for the certificate inventory."""

from certkeeper.services.auth import AuthService
from certkeeper.services.certificate import CertificateService
from certkeeper.services.folder import FolderService
from certkeeper.services.user import UserService

__all__ = [
    "AuthService",
    "CertificateService",
    "FolderService",
    "UserService",
]
