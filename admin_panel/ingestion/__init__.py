"""
Ingestion Module

Development data for the Orders and Payments stores.
"""
