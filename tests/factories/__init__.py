"""Test factories for toy registration problems."""
