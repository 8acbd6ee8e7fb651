"""Vendor sources: each fetches one kind of inventory and identifies its instances."""
