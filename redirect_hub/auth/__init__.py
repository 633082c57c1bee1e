"""Users, sessions and audit trail backing the redirect endpoints."""
