"""Call quality scoring service."""
