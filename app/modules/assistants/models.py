# Supabase table: user_assistants
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

user_assistants:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null)
- name: text (not null)
- vapi_assistant_id: text (not null, unique) - id of the mirrored Vapi assistant
- personality: text (default: 'professional') - professional | friendly | casual
- company_name: text (nullable)
- agent_name: text (nullable)
- model_id: text
- voice_id: text
- first_message: text
- first_message_mode: text (default: 'assistant-speaks-first')
- max_call_duration: integer (seconds, default: 300)
- background_sound: text (default: 'office')
- config: jsonb - {"questions": [...], "customInstructions": str, "originalConfig": {...} while usage-disabled}
- assistant_state: text (default: 'active') - active | disabled
- is_active: boolean (default: true) - false once deleted
- is_disabled: boolean (default: false) - set while the owner is over the minutes limit
- disabled_reason: text (nullable)
- disabled_at: timestamp (nullable)
- sync_status: text (nullable) - pending | synced | failed
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
