"""Logging subsystem for CertKeeper.

Public API::

    from certkeeper.logging import configure_logging

    configure_logging(settings.logging)
"""

from certkeeper.logging.setup import configure_logging

__all__ = ["configure_logging"]
