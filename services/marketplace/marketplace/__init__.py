"""Marketplace order processing, inventory reservation and vendor settlement."""
