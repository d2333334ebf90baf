"""Token-based authentication and role checks."""
