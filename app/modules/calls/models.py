# Supabase tables: call_logs, call_transcripts, call_analysis, call_costs
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

call_logs:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null)
- assistant_id: uuid (foreign key to user_assistants.id, nullable)
- phone_number_id: uuid (foreign key to user_phone_numbers.id, nullable)
- vapi_call_id: text (unique, nullable)
- caller_number: text (default: 'unknown')
- direction: text - values: inbound, outbound
- status: text - values: initiated, ringing, in_progress, completed, failed, no_answer, busy
- started_at, ended_at: timestamp (nullable)
- duration_seconds: int (default: 0) - summed for usage accounting
- cost: numeric (default: 0) - dollars
- cost_cents: int (default: 0)
- cost_breakdown: jsonb (nullable)
- ended_reason: text (nullable)
- summary: text (nullable)
- recording_url: text (nullable)
- transcript: text (nullable)
- structured_data: jsonb (nullable)
- success_evaluation: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

call_transcripts:
- id: uuid (primary key)
- call_id: uuid (unique, foreign key to call_logs.id)
- user_id: uuid
- transcript_text: text
- speakers: jsonb - [{role, text, timestamp, sequence}]
- language: text (default: 'en-US')
- updated_at: timestamp

call_analysis:
- id: uuid (primary key)
- call_id: uuid (foreign key to call_logs.id)
- user_id: uuid
- lead_score: int
- qualification_status: text - values: hot_lead, qualified, needs_followup, unqualified
- lead_quality: text - values: hot, warm, cold, unqualified
- sentiment, intent, topics, engagement: jsonb
- summary, next_steps: text
- confidence: numeric
- created_at: timestamp (default: now())

call_costs:
- call_id: uuid (unique, foreign key to call_logs.id)
- user_id: uuid
- llm_cost, stt_cost, tts_cost, transport_cost, vapi_cost, total_cost: numeric
- llm_tokens, estimated_tokens: int
- updated_at: timestamp
"""
