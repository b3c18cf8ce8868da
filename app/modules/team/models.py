# Supabase tables: teams, team_invitations, audit_logs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

teams:
- id: uuid (primary key)
- name: text (not null)
- owner_id: uuid (foreign key to profiles.id)
- max_agents: integer (default: 5) - member cap including the owner
- created_at: timestamp (default: now())

Membership lives on profiles:
- profiles.team_id: uuid (nullable, foreign key to teams.id)
- profiles.team_role: text (nullable) - admin | agent | viewer

team_invitations:
- id: uuid (primary key)
- team_id: uuid (foreign key to teams.id)
- email: text (not null)
- role: text (not null) - admin | agent | viewer
- first_name: text (nullable)
- last_name: text (nullable)
- invited_by: uuid (foreign key to profiles.id)
- status: text (default: 'pending') - pending | accepted | revoked
- created_at: timestamp (default: now())

audit_logs:
- id: uuid (primary key)
- user_id: uuid
- action: text - e.g. member_added_existing, invitation_sent, member_role_updated, member_removed, sync_with_vapi
- resource_type: text
- resource_id: text (nullable)
- details: jsonb (nullable)
- created_at: timestamp (default: now())
"""
