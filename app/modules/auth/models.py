# Supabase Auth + profiles
# Authentication is handled by Supabase Auth (auth.users table); the service
# keeps one profiles row per user holding plan, limits and team membership.

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, references auth.users.id)
- email: text (not null)
- full_name: text (nullable)
- subscription_type: text (default: 'free') - values: free, pro
- subscription_status: text (default: 'active')
- max_assistants: int (nullable) - overrides the plan when set
- max_minutes_monthly: int (nullable) - overrides the plan when set
- max_phone_numbers: int (nullable) - overrides the plan when set
- current_usage_minutes: int (default: 0)
- usage_reset_date: timestamp (nullable)
- limit_enforced_at: timestamp (nullable) - last time assistants were disabled for usage
- onboarding_completed: boolean (default: false)
- is_system_admin: boolean (default: false)
- team_id: uuid (nullable, foreign key to teams.id)
- team_role: text (nullable) - values: admin, agent, viewer
- created_at: timestamp (default: now()) - billing cycles start on its monthly anniversary
- updated_at: timestamp (nullable)

subscription_events:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id)
- event_type: text - e.g. usage_warning, limit_enforced, limits_reset
- metadata: jsonb
- created_at: timestamp (default: now())
"""
