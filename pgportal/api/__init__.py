"""HTTP surface of the tenant portal."""
