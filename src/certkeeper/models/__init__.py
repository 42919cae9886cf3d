"""Entity models for CertKeeper.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from certkeeper.models.certificate import Certificate, CertificateRecord
from certkeeper.models.folder import AccessControl, Folder
from certkeeper.models.user import Role, User

__all__ = [
    "AccessControl",
    "Certificate",
    "CertificateRecord",
    "Folder",
    "Role",
    "User",
]
