"""Shared helpers for the DQ feed upload service."""
