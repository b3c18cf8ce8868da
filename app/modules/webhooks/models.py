# Tables written by webhook ingestion (service-role client, RLS bypassed):
# call_logs, call_costs, call_transcripts, call_analysis (see calls/models.py),
# lead_responses, leads, lead_interactions (see leads/models.py),
# user_assistants and user_phone_numbers soft-deletes on resource events,
# profiles.current_usage_minutes / limit_enforced_at via usage enforcement.

"""
Inbound endpoints and their authentication:

POST /webhooks/vapi                 header x-vapi-secret == VAPI_WEBHOOK_SECRET
POST /webhooks/vapi/resource        header x-vapi-secret == VAPI_WEBHOOK_SECRET
POST /webhooks/make/call-reports    header x-make-apikey == MAKE_WEBHOOK_SECRET

Secrets are compared in constant time. An unset secret rejects every request.
"""
