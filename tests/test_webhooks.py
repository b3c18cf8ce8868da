"""Vapi and Make.com webhook ingestion.

Invariants:
    - Webhook endpoints reject requests without the correct shared secret
    - An end-of-call report writes call, cost, transcript, analysis, response and lead rows
    - Cost, transcript, response, analysis, lead and usage steps are non-fatal:
      failures are reported under `warnings` and the call row is still stored
    - A call-start followed by call-end keeps a single call_logs row
    - Unknown event types are acknowledged and ignored
"""

import pytest

from app.core.utils import utcnow_iso
from conftest import USER_ID

VAPI_HEADERS = {"x-vapi-secret": "test-vapi-secret"}
MAKE_HEADERS = {"x-make-apikey": "test-make-secret"}
CALLER = "+14155550123"


@pytest.fixture
def assistant(db, profile):
    return db.seed("user_assistants", {
        "user_id": USER_ID,
        "name": "Front desk",
        "vapi_assistant_id": "vapi-asst-1",
        "is_active": True,
        "is_disabled": False,
        "config": {
            "questions": [
                {
                    "question_text": "What kind of property are you after?",
                    "structured_field_name": "property_type",
                    "field_type": "string",
                    "is_required": True,
                    "display_order": 1,
                },
            ],
        },
    })[0]


def end_of_call_report(call_id="call-abc"):
    return {
        "message": {
            "type": "end-of-call-report",
            "call": {
                "id": call_id,
                "assistantId": "vapi-asst-1",
                "type": "inboundPhoneCall",
                "customer": {"number": CALLER},
            },
            "startedAt": "2026-03-05T10:00:00.000Z",
            "endedAt": "2026-03-05T10:01:35.000Z",
            "endedReason": "customer-ended-call",
            "cost": 0.42,
            "costBreakdown": {
                "llm": 0.1, "stt": 0.05, "tts": 0.12, "transport": 0.05, "vapi": 0.1, "total": 0.42,
                "llmPromptTokens": 800, "llmCompletionTokens": 120,
            },
            "summary": "Caller wants to buy a condo downtown.",
            "artifact": {
                "recordingUrl": "https://recordings.test/call-abc.wav",
                "messages": [
                    {"role": "bot", "message": "Hello! Thank you for calling. How can I help you today?"},
                    {"role": "user", "message": "Hi, I want to buy a condo this month, my budget is $450,000."},
                    {"role": "bot", "message": "Great, may I have your name?"},
                    {"role": "user", "message": "Jane Doe."},
                ],
            },
            "analysis": {
                "summary": "Caller wants to buy a condo downtown.",
                "structuredData": {"full_name": "Jane Doe", "property_type": "condo"},
                "successEvaluation": True,
            },
        }
    }


# Shared secrets

def test_vapi_webhook_requires_secret(anon_client):
    res = anon_client.post("/api/v1/webhooks/vapi", json={"message": {"type": "hang"}})
    assert res.status_code == 401
    body = res.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INVALID_WEBHOOK_SECRET"


def test_vapi_webhook_rejects_wrong_secret(anon_client):
    res = anon_client.post(
        "/api/v1/webhooks/vapi",
        json={"message": {"type": "hang"}},
        headers={"x-vapi-secret": "not-the-secret"},
    )
    assert res.status_code == 401


def test_make_webhook_requires_api_key(anon_client):
    res = anon_client.post(
        "/api/v1/webhooks/make/call-reports",
        json={"id": "c", "assistant_id": "a", "duration_seconds": 1, "started_at": "2026-03-05T10:00:00Z"},
        headers={"x-make-apikey": "wrong"},
    )
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "INVALID_WEBHOOK_SECRET"


def test_vapi_secret_header_is_not_accepted_by_make_endpoint(anon_client):
    res = anon_client.post(
        "/api/v1/webhooks/make/call-reports",
        json={"id": "c", "assistant_id": "a", "duration_seconds": 1, "started_at": "2026-03-05T10:00:00Z"},
        headers=VAPI_HEADERS,
    )
    assert res.status_code == 401


def test_status_endpoint_is_open(anon_client):
    res = anon_client.get("/api/v1/webhooks/vapi")
    assert res.status_code == 200
    assert res.json()["secret_configured"] is True


# End-of-call ingestion

def test_end_of_call_report_writes_every_table(anon_client, db, assistant):
    res = anon_client.post("/api/v1/webhooks/vapi", json=end_of_call_report(), headers=VAPI_HEADERS)

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["event_type"] == "end-of-call-report"
    assert body["warnings"] == []

    calls = db.rows("call_logs")
    assert len(calls) == 1
    call = calls[0]
    assert body["data"]["call_log_id"] == call["id"]
    assert call["user_id"] == USER_ID
    assert call["assistant_id"] == assistant["id"]
    assert call["status"] == "completed"
    assert call["duration_seconds"] == 95
    assert call["cost_cents"] == 42
    assert call["caller_number"] == CALLER
    assert call["success_evaluation"] == "true"

    costs = db.rows("call_costs")
    assert len(costs) == 1
    assert costs[0]["call_id"] == call["id"]
    assert costs[0]["llm_tokens"] == 920

    transcripts = db.rows("call_transcripts")
    assert len(transcripts) == 1
    assert transcripts[0]["transcript_text"].startswith("AI: Hello!")
    assert [s["role"] for s in transcripts[0]["speakers"]] == ["assistant", "user", "assistant", "user"]

    assert len(db.rows("call_analysis")) == 1

    responses = {r["field_name"]: r for r in db.rows("lead_responses")}
    assert responses["full_name"]["answer_value"] == "Jane Doe"
    assert responses["property_type"]["question_text"] == "What kind of property are you after?"

    leads = db.rows("leads")
    assert len(leads) == 1
    assert leads[0]["first_name"] == "Jane"
    assert leads[0]["last_name"] == "Doe"
    assert leads[0]["phone"] == CALLER
    assert leads[0]["call_id"] == call["id"]
    assert leads[0]["lead_source"] == "voice_call"
    assert body["data"]["lead_id"] == leads[0]["id"]

    assert db.rows("profiles")[0]["current_usage_minutes"] == 2


def test_end_of_call_survives_non_fatal_failures(anon_client, db, assistant):
    db.fail("call_costs", "upsert")
    db.fail("call_analysis", "insert")
    db.fail("lead_responses", "insert")

    res = anon_client.post("/api/v1/webhooks/vapi", json=end_of_call_report(), headers=VAPI_HEADERS)

    assert res.status_code == 200
    warnings = res.json()["warnings"]
    assert any(w.startswith("cost_breakdown:") for w in warnings)
    assert any(w.startswith("analysis:") for w in warnings)
    assert any(w.startswith("responses:") for w in warnings)
    assert len(db.rows("call_logs")) == 1
    assert len(db.rows("call_transcripts")) == 1
    # Lead is still captured from the extracted contact details
    assert len(db.rows("leads")) == 1


def test_end_of_call_usage_failure_is_a_warning(anon_client, db, assistant):
    db.rows("profiles").clear()

    res = anon_client.post("/api/v1/webhooks/vapi", json=end_of_call_report(), headers=VAPI_HEADERS)

    assert res.status_code == 200
    assert any(w.startswith("usage:") for w in res.json()["warnings"])


def test_end_of_call_for_unknown_assistant_is_rejected(anon_client, db, profile):
    res = anon_client.post("/api/v1/webhooks/vapi", json=end_of_call_report(), headers=VAPI_HEADERS)
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "WEBHOOK_PROCESSING_ERROR"
    assert db.rows("call_logs") == []


def test_end_of_call_that_hits_limit_disables_assistants(anon_client, db, assistant):
    db.seed("call_logs", {
        "user_id": USER_ID,
        "status": "completed",
        "duration_seconds": 600,
        "created_at": utcnow_iso(),
    })

    res = anon_client.post("/api/v1/webhooks/vapi", json=end_of_call_report(), headers=VAPI_HEADERS)

    assert res.status_code == 200
    assert res.json()["data"]["limit_enforced"] is True
    jobs = db.rows("vapi_sync_queue")
    assert [j["action"] for j in jobs] == ["disable"]


def test_call_start_then_end_keeps_one_row(anon_client, db, assistant):
    start = {
        "message": {
            "type": "call-start",
            "call": {"id": "call-abc", "assistantId": "vapi-asst-1", "customer": {"number": CALLER}},
        }
    }
    res = anon_client.post("/api/v1/webhooks/vapi", json=start, headers=VAPI_HEADERS)
    assert res.status_code == 200
    assert res.json()["data"]["created"] is True
    assert db.rows("call_logs")[0]["status"] == "initiated"

    anon_client.post("/api/v1/webhooks/vapi", json=end_of_call_report(), headers=VAPI_HEADERS)

    calls = db.rows("call_logs")
    assert len(calls) == 1
    assert calls[0]["status"] == "completed"


def test_function_call_stores_responses(anon_client, db, assistant):
    anon_client.post("/api/v1/webhooks/vapi", json={
        "message": {"type": "call-start", "call": {"id": "call-abc", "assistantId": "vapi-asst-1"}},
    }, headers=VAPI_HEADERS)

    res = anon_client.post("/api/v1/webhooks/vapi", json={
        "message": {
            "type": "function-call",
            "call": {"id": "call-abc", "assistantId": "vapi-asst-1"},
            "functionCall": {"name": "collectLeadData", "parameters": {"email": "jane@example.com", "budget": 450000}},
        }
    }, headers=VAPI_HEADERS)

    assert res.status_code == 200
    assert res.json()["data"]["stored"] == 2
    stored = {r["field_name"]: r for r in db.rows("lead_responses")}
    assert stored["email"]["confidence"] == 0.95
    assert stored["budget"]["answer_type"] == "number"
    assert stored["budget"]["function_name"] == "collectLeadData"


def test_status_update_maps_no_answer(anon_client, db, assistant):
    anon_client.post("/api/v1/webhooks/vapi", json={
        "message": {"type": "call-start", "call": {"id": "call-abc", "assistantId": "vapi-asst-1"}},
    }, headers=VAPI_HEADERS)

    res = anon_client.post("/api/v1/webhooks/vapi", json={
        "message": {
            "type": "status-update",
            "status": "ended",
            "endedReason": "customer-did-not-answer",
            "call": {"id": "call-abc"},
        }
    }, headers=VAPI_HEADERS)

    assert res.json()["data"] == {"updated": True, "status": "no_answer"}
    assert db.rows("call_logs")[0]["status"] == "no_answer"


def test_unknown_event_is_ignored(anon_client, db, profile):
    res = anon_client.post(
        "/api/v1/webhooks/vapi",
        json={"message": {"type": "model-output", "output": "hi"}},
        headers=VAPI_HEADERS,
    )
    assert res.status_code == 200
    assert res.json()["data"] == {"ignored": True}


def test_assistant_deleted_upstream_deactivates_row(anon_client, db, assistant):
    db.seed("user_phone_numbers", {
        "user_id": USER_ID, "phone_number": CALLER, "is_active": True, "assigned_assistant_id": assistant["id"],
    })

    res = anon_client.post("/api/v1/webhooks/vapi/resource", json={
        "message": {"type": "assistant.deleted", "assistant": {"id": "vapi-asst-1"}},
    }, headers=VAPI_HEADERS)

    assert res.status_code == 200
    assert res.json()["data"]["updated"] == 1
    assert db.rows("user_assistants")[0]["is_active"] is False
    assert db.rows("user_phone_numbers")[0]["assigned_assistant_id"] is None


# Make.com call reports

def test_make_call_report_creates_call_and_lead(anon_client, db, assistant):
    res = anon_client.post("/api/v1/webhooks/make/call-reports", json={
        "id": "call-make-1",
        "assistant_id": "vapi-asst-1",
        "duration_seconds": 125,
        "caller_number": CALLER,
        "started_at": "2026-03-05T10:00:00Z",
        "structured_data": {"fullName": "John Smith", "email": "john@example.com"},
        "summary": "Wants to sell a townhouse.",
        "cost": 0.3,
    }, headers=MAKE_HEADERS)

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Call report processed successfully"

    call = db.rows("call_logs")[0]
    assert body["call_log_id"] == call["id"]
    assert call["duration_seconds"] == 125
    assert call["cost_cents"] == 30
    lead = db.rows("leads")[0]
    assert body["lead_id"] == lead["id"]
    assert lead["first_name"] == "John"
    assert lead["email"] == "john@example.com"


def test_make_call_report_for_unknown_assistant(anon_client, db, profile):
    res = anon_client.post("/api/v1/webhooks/make/call-reports", json={
        "id": "call-make-1",
        "assistant_id": "vapi-missing",
        "duration_seconds": 10,
        "started_at": "2026-03-05T10:00:00Z",
    }, headers=MAKE_HEADERS)
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "ASSISTANT_NOT_FOUND"


def test_make_call_report_validates_payload(anon_client, db, assistant):
    res = anon_client.post("/api/v1/webhooks/make/call-reports", json={
        "id": "call-make-1",
        "assistant_id": "vapi-asst-1",
        "duration_seconds": -5,
        "started_at": "2026-03-05T10:00:00Z",
    }, headers=MAKE_HEADERS)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"
