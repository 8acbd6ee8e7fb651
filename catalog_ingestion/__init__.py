"""Catalog ingestion system.

Pulls inventory from external systems of record (AWS RDS, Okta, Google
Workspace), maps it to catalog entities annotated with their provenance, and
applies it to the catalog as a full snapshot per configured provider on a
recurring schedule.
"""
