"""Utility functions and classes for SQLBatis."""
