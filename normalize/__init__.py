"""Normalized pull request signal entities and payload normalizers."""
