# Supabase table: user_phone_numbers
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

user_phone_numbers:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null)
- phone_number: text (not null) - E.164, unique per user among active rows
- friendly_name: text (not null)
- provider: text (default: 'twilio')
- vapi_phone_id: text (not null) - id of the Vapi phone-number resource
- vapi_credential_id: text (nullable)
- twilio_account_sid: text (not null) - the auth token is sent to Vapi only, never stored
- assigned_assistant_id: uuid (nullable, foreign key to user_assistants.id)
- assigned_at: timestamp (nullable)
- is_active: boolean (default: true) - false once deleted
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
