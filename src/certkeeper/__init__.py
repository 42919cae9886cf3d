"""CertKeeper: enterprise certificate inventory and lifecycle tracker."""

__version__ = "1.0.0"
