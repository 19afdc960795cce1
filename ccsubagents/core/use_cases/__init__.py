"""Use cases — install, update, uninstall and status orchestration."""
