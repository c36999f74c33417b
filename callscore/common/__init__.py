"""Shared service infrastructure: logging, configuration, HTTP and health."""
