"""Speechwriter humanization pipeline and quality gate backend."""
