"""Services built on the permission core."""
