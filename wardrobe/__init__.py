"""
Wardrobe backend package.

Users upload garment images which are background-stripped and filed under
per-category collections; clients holding offline state reconcile with the
server through the sync endpoint. Records live in an in-memory store or a
SQLAlchemy-backed durable store selected at startup.
"""
