"""Upload screening and PEM/DER framing.

Turns an uploaded byte buffer into the DER bytes of exactly one
certificate, or raises a :class:`~certkeeper.certs.errors.CertificateParseError`
that tells the uploader what they actually sent (a key, a CSR, a text
dump, a truncated file...).
"""

from __future__ import annotations

import base64
import binascii
import re

from asn1crypto import parser as asn1_parser

from certkeeper.certs.errors import (
    CertificateRequestDetected,
    NotACertificate,
    PrivateKeyDetected,
    TextualCertificateDump,
    TruncatedInput,
    UnsupportedEncoding,
)

CERT_BEGIN = "-----BEGIN CERTIFICATE-----"
CERT_END = "-----END CERTIFICATE-----"

_CSR_MARKERS = (
    "-----BEGIN CERTIFICATE REQUEST-----",
    "-----BEGIN NEW CERTIFICATE REQUEST-----",
)

# PRIVATE KEY, RSA PRIVATE KEY, EC PRIVATE KEY, ENCRYPTED PRIVATE KEY, ...
_PRIVATE_KEY_RE = re.compile(r"-----BEGIN (?:[A-Z0-9]+ )*PRIVATE KEY(?: BLOCK)?-----")
_PEM_LABEL_RE = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----")

_DUMP_HEADER_RE = re.compile(r"^\s*Certificate:\s*$", re.MULTILINE)
_DUMP_FIELD_RE = re.compile(r"^\s*(?:Subject|Issuer):", re.MULTILINE)

_ASN1_SEQUENCE = 0x30
_INSUFFICIENT_DATA = "Insufficient data"


def _looks_textual(buffer: bytes) -> bool:
    try:
        text = buffer.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return all(ch.isprintable() or ch in "\r\n\t" for ch in text)


def _decode_pem(text: str, filename: str | None) -> bytes:
    """Base64-decode the first CERTIFICATE block in *text*."""
    start = text.index(CERT_BEGIN) + len(CERT_BEGIN)
    end = text.find(CERT_END, start)
    if end == -1:
        msg = "PEM certificate block has no END CERTIFICATE marker"
        raise TruncatedInput(msg, filename=filename)

    body = "".join(text[start:end].split())
    if not body:
        msg = "PEM certificate block is empty"
        raise TruncatedInput(msg, filename=filename)

    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "PEM certificate body is not valid base64"
        raise UnsupportedEncoding(msg, filename=filename) from exc


def _frame_der(der: bytes, filename: str | None) -> bytes:
    """Check the outer ASN.1 header and cut the buffer to one element."""
    if not der:
        msg = "Certificate data is empty"
        raise TruncatedInput(msg, filename=filename)
    if der[0] != _ASN1_SEQUENCE:
        msg = "Data does not start with an ASN.1 SEQUENCE; not a DER certificate"
        raise NotACertificate(msg, filename=filename)

    try:
        _class, _method, _tag, header, contents, trailer = asn1_parser.parse(der)
    except ValueError as exc:
        if str(exc).startswith(_INSUFFICIENT_DATA):
            msg = "Certificate data is truncated: the DER length exceeds the data received"
            raise TruncatedInput(msg, filename=filename) from exc
        msg = "Data is not a well-formed DER structure"
        raise NotACertificate(msg, filename=filename) from exc

    return der[: len(header) + len(contents) + len(trailer)]


def extract_der(buffer: bytes, filename: str | None = None) -> bytes:
    """Screen an uploaded buffer and return the DER bytes of its certificate.

    PEM input is detected by the ``BEGIN CERTIFICATE`` marker; anything
    else is treated as raw DER.  Buffers that carry a private key, a CSR
    or a human-readable dump are rejected outright, even when a
    certificate is present as well.

    Raises:
        CertificateParseError: One of its subclasses, naming what was
            wrong with the input.
    """
    if not buffer:
        msg = "Certificate file is empty"
        raise TruncatedInput(msg, filename=filename)

    # latin-1 never fails and keeps every ASCII marker intact
    text = buffer.decode("latin-1")
    has_certificate = CERT_BEGIN in text

    if (
        not has_certificate
        and _DUMP_HEADER_RE.search(text)
        and _DUMP_FIELD_RE.search(text)
    ):
        msg = (
            "The file is a text representation of a certificate, "
            "not a PEM or DER encoded certificate"
        )
        raise TextualCertificateDump(msg, filename=filename)

    if any(marker in text for marker in _CSR_MARKERS):
        msg = (
            "The file contains a Certificate Signing Request (CSR); "
            "upload the issued X.509 certificate instead"
        )
        raise CertificateRequestDetected(msg, filename=filename)

    if _PRIVATE_KEY_RE.search(text):
        msg = "The file contains a private key; upload only the X.509 certificate"
        raise PrivateKeyDetected(msg, filename=filename)

    if has_certificate:
        der = _decode_pem(text, filename)
    else:
        label = _PEM_LABEL_RE.search(text)
        if label is not None:
            msg = f"PEM block '{label.group(1)}' is not an X.509 certificate"
            raise UnsupportedEncoding(msg, filename=filename)
        if _looks_textual(buffer):
            msg = "No certificate markers found in text input"
            raise NotACertificate(msg, filename=filename)
        der = buffer

    return _frame_der(der, filename)
