"""Inspect subcommand: parse a local certificate file.

Usage::

    certkeeper -c config.yaml inspect server.crt
"""

from __future__ import annotations

import json
import sys
from datetime import UTC, datetime
from pathlib import Path


def run_inspect(config, args) -> None:
    """Print the parsed record of ``args.file`` as JSON."""
    from certkeeper.certs import CertificateParseError, parse_certificate
    from certkeeper.core.status import days_until_expiry

    path = Path(args.file)
    if not path.is_file():
        sys.stderr.write(f"certkeeper: error: file not found: {path}\n")
        sys.exit(1)

    now = datetime.now(UTC)
    try:
        record = parse_certificate(
            path.read_bytes(),
            path.name,
            now=now,
            soon_window_days=config.settings.certificates.expiring_soon_days,
        )
    except CertificateParseError as exc:
        sys.stderr.write(f"certkeeper: error: {exc.reason}: {exc.detail}\n")
        sys.exit(1)

    result = {
        "file": str(path),
        "common_name": record.common_name,
        "subject": record.subject,
        "issuer": record.issuer,
        "valid_from": record.valid_from.isoformat(),
        "valid_to": record.valid_to.isoformat(),
        "algorithm": record.algorithm,
        "serial_number": record.serial_number,
        "fingerprint": record.fingerprint,
        "san_dns_names": list(record.san_dns_names),
        "status": record.status.value,
        "days_until_expiry": days_until_expiry(record.valid_to, now),
    }
    sys.stdout.write(json.dumps(result, indent=2) + "\n")
