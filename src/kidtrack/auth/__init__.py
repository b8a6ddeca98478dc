"""Roles, permission engine and the per-user permission facade."""
