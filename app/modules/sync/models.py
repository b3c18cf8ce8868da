# Supabase tables: vapi_sync_queue, audit_logs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

vapi_sync_queue:
- id: uuid (primary key)
- assistant_id: uuid (foreign key to user_assistants.id)
- vapi_assistant_id: text (not null)
- action: text - values: disable, enable, delete, update
- reason: text (nullable) - for 'update' jobs, a JSON object of Vapi fields to apply
- priority: int (default: 5) - lower runs first
- retry_count: int (default: 0) - jobs stop being picked up at 3
- error: text (nullable)
- last_retry_at: timestamp (nullable)
- processed_at: timestamp (nullable) - null while pending
- created_at: timestamp (default: now())

audit_logs:
- id: uuid (primary key)
- user_id: uuid (nullable)
- action: text - e.g. sync_with_vapi
- resource_type: text (nullable)
- resource_id: text (nullable)
- details: jsonb
- created_at: timestamp (default: now())
"""
