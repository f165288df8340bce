"""Managers for the security gate."""
