"""GEKO XML catalog import service."""
