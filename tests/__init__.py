"""
KSBackup Test Suite.

This package contains:
- unit/: Unit tests (temporary directories, fake management client)
- integration/: Full backup/restore flows against an on-disk data layout
"""
