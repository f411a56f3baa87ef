"""Test suite for alignopt."""
