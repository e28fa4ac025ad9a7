"""
Stores Module

Frappe-backed implementations of the scheduling ports (frappe_store.py).
"""
