"""Auth services."""
