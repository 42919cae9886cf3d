"""Domain primitives shared by every CertKeeper layer."""
