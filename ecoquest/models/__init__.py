"""Pydantic models for users, badges, content catalogs, preferences and ledger snapshots"""
