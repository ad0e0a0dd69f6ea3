"""Value parsing helpers used by the normalizers and validators."""
