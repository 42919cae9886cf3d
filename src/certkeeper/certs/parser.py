"""X.509 certificate parser.

Decodes a PEM or DER buffer into a :class:`CertificateRecord`.  The
heavy lifting is done by :mod:`cryptography`; :mod:`asn1crypto` is used
for the raw serial-number octets, which ``cryptography`` only exposes
as an integer (losing leading zero octets).
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime

from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

from certkeeper.certs.encoding import extract_der
from certkeeper.certs.errors import InvalidDates, NotACertificate
from certkeeper.core.status import DEFAULT_SOON_WINDOW_DAYS, classify
from certkeeper.models.certificate import CertificateRecord

log = logging.getLogger(__name__)

UNKNOWN_COMMON_NAME = "Unknown"

# ---------------------------------------------------------------------------
# Name rendering
# ---------------------------------------------------------------------------

_NAME_ATTRIBUTE_CODES = {
    NameOID.COUNTRY_NAME: "C",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COMMON_NAME: "CN",
    NameOID.LOCALITY_NAME: "L",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
}

_CN_RE = re.compile(r"(?:^|,\s*)CN=([^,]+)")

# ---------------------------------------------------------------------------
# Signature algorithms
# ---------------------------------------------------------------------------

_SIGNATURE_ALGORITHM_NAMES = {
    SignatureAlgorithmOID.RSA_WITH_MD5: "md5WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA1: "sha1WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "sha224WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "sha256WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "sha384WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "sha512WithRSAEncryption",
    SignatureAlgorithmOID.RSASSA_PSS: "rsassaPss",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ecdsa-with-SHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ecdsa-with-SHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ecdsa-with-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ecdsa-with-SHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ecdsa-with-SHA512",
    SignatureAlgorithmOID.DSA_WITH_SHA1: "dsa-with-SHA1",
    SignatureAlgorithmOID.DSA_WITH_SHA224: "dsa-with-SHA224",
    SignatureAlgorithmOID.DSA_WITH_SHA256: "dsa-with-SHA256",
    SignatureAlgorithmOID.ED25519: "ed25519",
    SignatureAlgorithmOID.ED448: "ed448",
}

_MIN_YEAR = 1970


def _colon_hex(data: bytes) -> str:
    return ":".join(f"{b:02X}" for b in data)


def render_name(name: x509.Name) -> str:
    """Render a DN as ``ATTR=value`` pairs in encounter order.

    Only C, O, OU, CN, L and ST are emitted; other attributes are
    skipped.
    """
    parts = []
    for attribute in name:
        code = _NAME_ATTRIBUTE_CODES.get(attribute.oid)
        if code is None:
            continue
        parts.append(f"{code}={attribute.value}")
    return ", ".join(parts)


def san_dns_names(cert: x509.Certificate) -> tuple[str, ...]:
    """DNS names from the SAN extension, or ``()`` if there is none."""
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return ()
    except ValueError:
        log.warning("Ignoring malformed extensions in certificate %s", cert.serial_number)
        return ()
    return tuple(ext.value.get_values_for_type(x509.DNSName))


def resolve_common_name(
    subject: x509.Name,
    rendered_subject: str,
    dns_names: tuple[str, ...],
) -> str:
    """Pick a display name: subject CN, ``CN=`` in the DN, first SAN, ``Unknown``."""
    for attribute in subject.get_attributes_for_oid(NameOID.COMMON_NAME):
        value = str(attribute.value).strip()
        if value:
            return value

    match = _CN_RE.search(rendered_subject)
    if match and match.group(1).strip():
        return match.group(1).strip()

    if dns_names:
        return dns_names[0].lower()

    return UNKNOWN_COMMON_NAME


def signature_algorithm_name(cert: x509.Certificate) -> str:
    oid = cert.signature_algorithm_oid
    return _SIGNATURE_ALGORITHM_NAMES.get(oid, oid.dotted_string)


def serial_hex(der: bytes) -> str:
    """Serial number content octets, as stored on the wire."""
    tbs = asn1_x509.Certificate.load(der)["tbs_certificate"]
    return _colon_hex(tbs["serial_number"].contents)


def _validity(cert: x509.Certificate, filename: str | None) -> tuple[datetime, datetime]:
    try:
        valid_from = cert.not_valid_before_utc
        valid_to = cert.not_valid_after_utc
    except ValueError as exc:
        msg = f"Certificate validity period cannot be decoded: {exc}"
        raise InvalidDates(msg, filename=filename) from exc

    if valid_from.year < _MIN_YEAR or valid_to.year < _MIN_YEAR:
        msg = f"Certificate validity dates predate {_MIN_YEAR}"
        raise InvalidDates(msg, filename=filename)
    if valid_from > valid_to:
        msg = (
            f"Certificate notBefore ({valid_from.isoformat()}) is after "
            f"notAfter ({valid_to.isoformat()})"
        )
        raise InvalidDates(msg, filename=filename)
    return valid_from, valid_to


def parse_certificate(
    buffer: bytes,
    filename: str | None = None,
    *,
    now: datetime | None = None,
    soon_window_days: int = DEFAULT_SOON_WINDOW_DAYS,
) -> CertificateRecord:
    """Parse one PEM or DER encoded X.509 certificate.

    Args:
        buffer: Raw upload bytes.
        filename: Original filename, used only in error messages.
        now: Reference instant for the status; defaults to the current
            UTC time.
        soon_window_days: Width of the ``EXPIRING_SOON`` window.

    Returns:
        The extracted :class:`CertificateRecord`.  PEM and DER inputs
        of the same certificate yield equal records.

    Raises:
        CertificateParseError: On any rejected input.  Never raises for
            a missing common name.
    """
    der = extract_der(buffer, filename)

    try:
        cert = x509.load_der_x509_certificate(der)
        subject = render_name(cert.subject)
        issuer = render_name(cert.issuer)
        serial = serial_hex(der)
    except ValueError as exc:
        msg = f"Unable to decode X.509 certificate: {exc}"
        raise NotACertificate(msg, filename=filename) from exc

    valid_from, valid_to = _validity(cert, filename)
    dns_names = san_dns_names(cert)

    status = classify(
        valid_to,
        now if now is not None else datetime.now(UTC),
        soon_window_days,
    )

    return CertificateRecord(
        common_name=resolve_common_name(cert.subject, subject, dns_names),
        subject=subject,
        issuer=issuer,
        valid_from=valid_from,
        valid_to=valid_to,
        algorithm=signature_algorithm_name(cert),
        serial_number=serial,
        status=status,
        fingerprint=_colon_hex(cert.fingerprint(hashes.SHA256())),
        pem=cert.public_bytes(Encoding.PEM).decode("ascii"),
        san_dns_names=dns_names,
    )
