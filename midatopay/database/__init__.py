"""
Database integration layer for MidatoPay
"""

from midatopay.database.client import DatabaseClient, get_db_client

__all__ = ["DatabaseClient", "get_db_client"]
