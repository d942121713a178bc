#!/usr/bin/env python3
"""
Database check script for the Quizdesk attempt service
Run this to verify Supabase access and see which tables the engine writes to
"""

import sys

from quizdesk.database import test_supabase_connection

TABLES = {
    "quizzes": "read: quiz settings (duration, shuffle, feedback, passing percentage)",
    "questions": "read: questions in question_order",
    "question_options": "read: options and correctness flags",
    "quiz_attempts": "write: one row per attempt, finalized once",
    "student_responses": "write: one row per submitted question, unique (attempt_id, question_id)",
    "users_profile": "write: total_quizzes_taken / total_score counters",
}

def init_supabase():
    """Test Supabase connection and list the tables the engine needs"""
    print("Testing Supabase connection...")

    if not test_supabase_connection():
        print("Supabase connection failed")
        print("\nTroubleshooting:")
        print("1. Check your .env file has SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        print("2. Verify your Supabase project is active")
        print("3. Run create_tables.sql in the Supabase SQL editor")
        return False

    print("Supabase connection successful!")
    print("\nTables used by the attempt engine:")
    for table, purpose in TABLES.items():
        print(f"  - {table}: {purpose}")
    return True

if __name__ == "__main__":
    sys.exit(0 if init_supabase() else 1)
