"""Services — release, attestation, archive, JSON config and rollback."""
