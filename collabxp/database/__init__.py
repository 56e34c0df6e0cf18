"""Persistence schema for collabxp."""
