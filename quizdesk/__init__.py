"""Quiz attempt scoring and session engine backed by Supabase."""

__version__ = "1.0.0"
