from functools import lru_cache
from supabase import create_client, Client
from quizdesk.config import settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Supabase Client Setup
def get_supabase_client() -> Client:
    """Get Supabase client for verifying student tokens"""
    return create_client(
        settings.supabase_url,
        settings.supabase_anon_key.get_secret_value()
    )

def get_supabase_admin_client() -> Client:
    """Get Supabase admin client for attempt bookkeeping"""
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key.get_secret_value()
    )

@lru_cache(maxsize=1)
def supabase() -> Client:
    return get_supabase_client()

@lru_cache(maxsize=1)
def supabase_admin() -> Client:
    return get_supabase_admin_client()

def test_supabase_connection(client: Optional[Client] = None) -> bool:
    """Test Supabase connection"""
    client = client or supabase_admin()
    try:
        client.table('quizzes').select('id').limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"Supabase connection test failed: {e}")
        return False

class Database:
    """Thin wrapper over supabase-py table queries for attempt bookkeeping.

    Every method logs the failing table and re-raises the client error.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = supabase_admin()
        return self._client

    def insert(self, table: str, data: dict):
        """Insert one row and return it as stored"""
        try:
            result = self.client.table(table).insert(data).execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Could not insert into {table}: {e}")
            raise

    def upsert(self, table: str, data: dict, on_conflict: str):
        """Insert one row, or overwrite the row that matches the on_conflict columns"""
        try:
            result = self.client.table(table).upsert(data, on_conflict=on_conflict).execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Could not upsert into {table} on ({on_conflict}): {e}")
            raise

    def select(self, table: str, columns: str = "*", filters: dict = None, limit: int = None, order: str = None):
        """Rows matching every equality filter, optionally ordered and limited"""
        try:
            query = self.client.table(table).select(columns)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)

            if order:
                query = query.order(order)

            if limit:
                query = query.limit(limit)

            result = query.execute()
            return result.data
        except Exception as e:
            logger.error(f"Could not read {table} where {filters}: {e}")
            raise

    def update(self, table: str, data: dict, filters: dict):
        """Update the rows matching filters and return the first one"""
        try:
            query = self.client.table(table).update(data)

            for column, value in filters.items():
                query = query.eq(column, value)

            result = query.execute()
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Could not update {table} where {filters}: {e}")
            raise

db = Database()
