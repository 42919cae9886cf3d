"""Certificate parsing.

Public API::

    from certkeeper.certs import parse_certificate

    record = parse_certificate(data, filename="server.pem")
"""

from certkeeper.certs.errors import (
    CertificateParseError,
    CertificateRequestDetected,
    InvalidDates,
    NotACertificate,
    PrivateKeyDetected,
    TextualCertificateDump,
    TruncatedInput,
    UnsupportedEncoding,
)
from certkeeper.certs.parser import parse_certificate

__all__ = [
    "CertificateParseError",
    "CertificateRequestDetected",
    "InvalidDates",
    "NotACertificate",
    "PrivateKeyDetected",
    "TextualCertificateDump",
    "TruncatedInput",
    "UnsupportedEncoding",
    "parse_certificate",
]
