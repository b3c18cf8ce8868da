# Supabase tables read by usage accounting: profiles, call_logs, user_assistants,
# user_phone_numbers, subscription_events
# This file documents the columns the usage calculations rely on

"""
call_logs (see calls/models.py for the full table):
- user_id: uuid
- duration_seconds: int - summed for the current billing cycle
- created_at: timestamp - compared against the cycle start

profiles (see auth/models.py):
- created_at: timestamp - billing cycles start on its monthly anniversary
- subscription_type, max_assistants, max_minutes_monthly, max_phone_numbers
- current_usage_minutes: int - written by recalculate_usage
- limit_enforced_at: timestamp - enforcement runs at most once per cycle

Minutes are billed per cycle as ceil(sum(duration_seconds) / 60).
"""
