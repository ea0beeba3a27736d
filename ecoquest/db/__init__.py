"""Relational store access: connection pool, queries and the ledger store"""
