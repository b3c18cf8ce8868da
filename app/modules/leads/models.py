# Supabase tables: leads, lead_interactions, lead_responses
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

leads:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null)
- team_id: uuid (nullable) - leads are shared across a team when set
- call_id: uuid (nullable, foreign key to call_logs.id)
- assistant_id: uuid (nullable, foreign key to user_assistants.id)
- first_name, last_name, email: text (nullable)
- phone: text (nullable) - best-effort unique per user
- lead_type: text (nullable) - values: buyer, seller, investor, renter
- lead_source: text (default: 'manual') - e.g. manual, voice_call
- status: text (default: 'new') - values: new, contacted, qualified, converted, lost
- score: int (default: 0) - 0-100
- property_type: text[] (nullable)
- budget_min, budget_max: numeric (nullable)
- preferred_locations: text[] (nullable)
- timeline: text (nullable)
- notes: text (nullable)
- tags: text[] (nullable)
- next_follow_up_at: timestamp (nullable)
- last_contact_at: timestamp (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

lead_interactions:
- id: uuid (primary key)
- lead_id: uuid (foreign key to leads.id, on delete cascade)
- user_id: uuid (not null)
- interaction_type: text - values: call, email, text, note, meeting, follow_up
- content: text (nullable)
- scheduled_at, completed_at: timestamp (nullable)
- created_at: timestamp (default: now())

lead_responses:
- id: uuid (primary key)
- call_id: uuid (foreign key to call_logs.id)
- user_id: uuid
- field_name: text
- question_text: text
- answer_value: text
- answer_type: text - values: string, number, boolean, array
- confidence: numeric
- function_name: text (nullable)
- collected_at: timestamp
"""
