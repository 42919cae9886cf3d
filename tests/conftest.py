"""Root conftest for the CertKeeper test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


# ---------------------------------------------------------------------------
# Minimal config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a dict containing the minimum required config fields."""
    return {
        "server": {"external_url": "https://certs.example.com"},
        "database": {"database": "certkeeper_test", "user": "testuser"},
        "auth": {"token_secret": "test-secret-0123456789abcdef"},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


# ---------------------------------------------------------------------------
# Config singleton cleanup -- autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the CertkeeperConfig singleton before and after every test."""
    from certkeeper.config.certkeeper_config import CertkeeperConfig

    CertkeeperConfig.reset()
    yield
    CertkeeperConfig.reset()


# ---------------------------------------------------------------------------
# Test certificates
# ---------------------------------------------------------------------------

NOW = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture(scope="session")
def ec_key():
    from cryptography.hazmat.primitives.asymmetric import ec

    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture()
def make_cert(ec_key):
    """Factory for self-signed certificates.

    ``make_cert(cn="example.com", not_after=..., sans=[...])`` returns a
    :class:`cryptography.x509.Certificate`.  Pass ``cn=None`` for a
    subject without a common name.
    """
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes
    from cryptography.x509.oid import NameOID

    def _make(
        cn: str | None = "example.com",
        *,
        org: str | None = "Example Corp",
        country: str | None = "US",
        not_before: datetime | None = None,
        not_after: datetime | None = None,
        sans: list[str] | None = None,
        serial: int = 0x0A1B2C,
        key=None,
    ):
        attrs = []
        if country:
            attrs.append(x509.NameAttribute(NameOID.COUNTRY_NAME, country))
        if org:
            attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, org))
        if cn:
            attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, cn))
        if not attrs:
            attrs.append(x509.NameAttribute(NameOID.LOCALITY_NAME, "Nowhere"))
        name = x509.Name(attrs)
        signing_key = key or ec_key

        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(signing_key.public_key())
            .serial_number(serial)
            .not_valid_before(not_before or NOW - timedelta(days=30))
            .not_valid_after(not_after or NOW + timedelta(days=365))
        )
        if sans:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(s) for s in sans]),
                critical=False,
            )
        return builder.sign(signing_key, hashes.SHA256())

    return _make


@pytest.fixture()
def cert_pem(make_cert) -> bytes:
    from cryptography.hazmat.primitives.serialization import Encoding

    return make_cert().public_bytes(Encoding.PEM)


@pytest.fixture()
def cert_der(make_cert) -> bytes:
    from cryptography.hazmat.primitives.serialization import Encoding

    return make_cert().public_bytes(Encoding.DER)
