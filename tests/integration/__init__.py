"""End-to-end registration workflow tests."""
