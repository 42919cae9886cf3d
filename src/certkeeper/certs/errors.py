"""Certificate parse error taxonomy.

Every failure raised by :func:`~certkeeper.certs.parser.parse_certificate`
is a :class:`CertificateParseError`.  The ``reason`` class attribute is
a stable camelCase code the HTTP layer turns into a problem type URN.
"""

from __future__ import annotations


class CertificateParseError(Exception):
    """Base class for rejected certificate uploads.

    Parameters
    ----------
    detail:
        Human-readable explanation, safe to show to the uploader.
    filename:
        Optional original filename, kept for diagnostics only.

    """

    reason = "parseError"

    def __init__(self, detail: str, *, filename: str | None = None) -> None:
        self.detail = detail
        self.filename = filename
        super().__init__(detail)


class NotACertificate(CertificateParseError):
    """No X.509 certificate markers or structure found."""

    reason = "notACertificate"


class PrivateKeyDetected(NotACertificate):
    reason = "privateKeyDetected"


class CertificateRequestDetected(NotACertificate):
    reason = "certificateRequestDetected"


class TextualCertificateDump(NotACertificate):
    """A human-readable ``openssl x509 -text`` style dump."""

    reason = "textualCertificateDump"


class UnsupportedEncoding(CertificateParseError):
    reason = "unsupportedEncoding"


class InvalidDates(CertificateParseError):
    reason = "invalidDates"


class TruncatedInput(CertificateParseError):
    reason = "truncatedInput"
