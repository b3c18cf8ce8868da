"""
Keeps Vapi in line with the database.

Changes that must reach Vapi outside a request (usage-limit disable/enable,
deferred deletes) go through the vapi_sync_queue table and are retried up to
MAX_RETRIES times. Reconciliation and cost sync pull state back from Vapi.
"""

import json
import logging
import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.plans import LIMITED_FIRST_MESSAGE, LIMITED_MAX_DURATION_SECONDS
from app.core.errors import ValidationFailed, VapiError
from app.core.utils import mask_phone, utcnow, utcnow_iso
from app.integrations.vapi_client import VapiClient
from app.modules.calls.costs import cost_breakdown_row, to_cents

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
SYNC_ACTIONS = ("disable", "enable", "delete", "update")

# Vapi fields captured before limiting an assistant and restored on enable
_RESTORABLE_FIELDS = ("maxDurationSeconds", "firstMessage")

_processing_lock = threading.Lock()


def queue_sync_job(
    supabase: Client,
    assistant_id: str,
    vapi_assistant_id: str,
    action: str,
    reason: Optional[str] = None,
    priority: int = 5,
) -> Optional[Dict[str, Any]]:
    """Insert a pending vapi_sync_queue job"""
    if action not in SYNC_ACTIONS:
        raise ValidationFailed(f"Unknown sync action: {action}")
    result = supabase.table("vapi_sync_queue").insert({
        "assistant_id": assistant_id,
        "vapi_assistant_id": vapi_assistant_id,
        "action": action,
        "reason": reason,
        "priority": priority,
        "retry_count": 0,
        "created_at": utcnow_iso(),
    }).execute()
    logger.info(f"Queued {action} job for assistant {assistant_id} (priority {priority})")
    return result.data[0] if result.data else None


class VapiSyncService:
    def __init__(self, supabase: Client, vapi: Optional[VapiClient] = None):
        self.supabase = supabase
        self.vapi = vapi

    def queue_sync(self, assistant_id: str, vapi_assistant_id: str, action: str, reason: Optional[str] = None, priority: int = 5):
        return queue_sync_job(self.supabase, assistant_id, vapi_assistant_id, action, reason, priority)

    # Queue processing

    def _pending_jobs(self, limit: int, assistant_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        query = self.supabase.table("vapi_sync_queue")\
            .select("*")\
            .is_("processed_at", "null")\
            .lt("retry_count", MAX_RETRIES)
        if assistant_ids is not None:
            query = query.in_("assistant_id", assistant_ids)
        result = query.order("priority")\
            .order("created_at")\
            .limit(limit)\
            .execute()
        return result.data or []

    def process_pending_jobs(self, limit: int = 10) -> Dict[str, Any]:
        """Run up to `limit` pending jobs. Concurrent calls return immediately."""
        if not self.vapi:
            logger.warning("Vapi is not configured; skipping sync queue")
            return {"processed": 0, "succeeded": 0, "failed": 0, "skipped": True}
        if not _processing_lock.acquire(blocking=False):
            logger.info("Sync queue is already being processed")
            return {"processed": 0, "succeeded": 0, "failed": 0, "skipped": True}
        try:
            return self._run_jobs(self._pending_jobs(limit))
        finally:
            _processing_lock.release()

    def process_user_jobs(self, user_id: str, limit: int = 50) -> Dict[str, Any]:
        if not self.vapi:
            return {"processed": 0, "succeeded": 0, "failed": 0, "skipped": True}
        assistants = self.supabase.table("user_assistants")\
            .select("id")\
            .eq("user_id", user_id)\
            .execute()
        assistant_ids = [a["id"] for a in assistants.data or []]
        if not assistant_ids:
            return {"processed": 0, "succeeded": 0, "failed": 0, "skipped": False}
        return self._run_jobs(self._pending_jobs(limit, assistant_ids))

    def _run_jobs(self, jobs: List[Dict[str, Any]]) -> Dict[str, Any]:
        succeeded = 0
        for job in jobs:
            if self.process_job(job):
                succeeded += 1
        if jobs:
            logger.info(f"Processed {len(jobs)} sync job(s): {succeeded} succeeded, {len(jobs) - succeeded} failed")
        return {"processed": len(jobs), "succeeded": succeeded, "failed": len(jobs) - succeeded, "skipped": False}

    def process_job(self, job: Dict[str, Any]) -> bool:
        action = job.get("action")
        vapi_id = job.get("vapi_assistant_id")
        try:
            if not vapi_id:
                raise ValueError("Job has no Vapi assistant id")
            if action == "disable":
                self.disable_assistant(vapi_id, job.get("reason"))
            elif action == "enable":
                self.enable_assistant(vapi_id)
            elif action == "delete":
                self.delete_assistant(vapi_id)
            elif action == "update":
                self.update_assistant(vapi_id, job.get("reason"))
            else:
                raise ValueError(f"Unknown sync action: {action}")
            self.supabase.table("vapi_sync_queue")\
                .update({"processed_at": utcnow_iso(), "error": None})\
                .eq("id", job["id"])\
                .execute()
            return True
        except Exception as e:
            retry_count = int(job.get("retry_count") or 0) + 1
            logger.error(f"Sync job {job.get('id')} ({action}) failed, attempt {retry_count}/{MAX_RETRIES}: {e}")
            self.supabase.table("vapi_sync_queue")\
                .update({
                    "retry_count": retry_count,
                    "error": str(e),
                    "last_retry_at": utcnow_iso(),
                })\
                .eq("id", job["id"])\
                .execute()
            return False

    def _assistant_row(self, vapi_assistant_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("user_assistants")\
            .select("id, config")\
            .eq("vapi_assistant_id", vapi_assistant_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def disable_assistant(self, vapi_assistant_id: str, reason: Optional[str] = None):
        """Cap the assistant to a short goodbye call, remembering what it was before"""
        row = self._assistant_row(vapi_assistant_id)
        config = dict((row or {}).get("config") or {})
        if "originalConfig" not in config:
            current = self.vapi.get_assistant(vapi_assistant_id)
            config["originalConfig"] = {k: current.get(k) for k in _RESTORABLE_FIELDS if k in current}
        self.vapi.update_assistant(vapi_assistant_id, {
            "maxDurationSeconds": LIMITED_MAX_DURATION_SECONDS,
            "firstMessage": LIMITED_FIRST_MESSAGE,
        })
        if row:
            self.supabase.table("user_assistants")\
                .update({"config": config})\
                .eq("id", row["id"])\
                .execute()
        logger.info(f"Disabled Vapi assistant {vapi_assistant_id} ({reason or 'no reason'})")

    def enable_assistant(self, vapi_assistant_id: str):
        row = self._assistant_row(vapi_assistant_id)
        if not row:
            raise ValueError("Assistant configuration not found")
        config = dict(row.get("config") or {})
        original = config.pop("originalConfig", None)
        if original:
            self.vapi.update_assistant(vapi_assistant_id, original)
        self.supabase.table("user_assistants")\
            .update({"config": config})\
            .eq("id", row["id"])\
            .execute()
        logger.info(f"Re-enabled Vapi assistant {vapi_assistant_id}")

    def delete_assistant(self, vapi_assistant_id: str):
        try:
            self.vapi.delete_assistant(vapi_assistant_id)
        except VapiError as e:
            if e.vapi_status != 404:
                raise

    def update_assistant(self, vapi_assistant_id: str, payload: Optional[str]):
        try:
            updates = json.loads(payload or "")
        except ValueError:
            raise ValueError("Update job payload is not valid JSON")
        if not isinstance(updates, dict):
            raise ValueError("Update job payload must be a JSON object")
        self.vapi.update_assistant(vapi_assistant_id, updates)

    # Cost sync

    def sync_call_costs(self, user_id: str, days: int = 7) -> Dict[str, Any]:
        """Pull final call costs from Vapi for the user's recent calls"""
        if not self.vapi:
            raise VapiError("Vapi is not configured")
        try:
            cutoff = (utcnow() - timedelta(days=days)).isoformat()
            calls = self.supabase.table("call_logs")\
                .select("id, vapi_call_id, cost")\
                .eq("user_id", user_id)\
                .gte("created_at", cutoff)\
                .execute()
            known = {c["vapi_call_id"]: c for c in calls.data or [] if c.get("vapi_call_id")}

            synced = 0
            delta_total = 0.0
            for vapi_call in self.vapi.list_calls(created_at_gt=cutoff, limit=100):
                local = known.get(vapi_call.get("id"))
                if not local:
                    continue
                try:
                    new_cost = float(vapi_call.get("cost") or 0)
                    old_cost = float(local.get("cost") or 0)
                    if abs(new_cost - old_cost) < 1e-9:
                        continue
                    self.supabase.table("call_logs")\
                        .update({
                            "cost": new_cost,
                            "cost_cents": to_cents(new_cost),
                            "cost_breakdown": vapi_call.get("costBreakdown") or {},
                            "updated_at": utcnow_iso(),
                        })\
                        .eq("id", local["id"])\
                        .execute()
                    self.supabase.table("call_costs")\
                        .upsert(cost_breakdown_row(local["id"], user_id, vapi_call), on_conflict="call_id")\
                        .execute()
                    synced += 1
                    delta_total += new_cost - old_cost
                except Exception as e:
                    logger.error(f"Failed to sync cost for call {vapi_call.get('id')}: {e}")

            logger.info(f"Synced costs for {synced} call(s) of user {user_id}")
            return {
                "synced_calls": synced,
                "total_cost_synced": round(delta_total, 4),
                "synced_at": utcnow_iso(),
            }
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    # Reconciliation

    def reconcile_user_resources(self, user_id: str) -> Dict[str, Any]:
        """Soft-delete local assistants/phone numbers that no longer exist in Vapi"""
        if not self.vapi:
            raise VapiError("Vapi is not configured")
        summary = {
            "assistants_checked": 0,
            "assistants_removed": 0,
            "phone_numbers_checked": 0,
            "phone_numbers_removed": 0,
            "errors": 0,
        }

        assistants = self.supabase.table("user_assistants")\
            .select("id, vapi_assistant_id, name")\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .execute()
        local_assistants = [a for a in assistants.data or [] if a.get("vapi_assistant_id")]
        if local_assistants:
            remote_ids = {a.get("id") for a in self.vapi.list_assistants(limit=1000)}
            for assistant in local_assistants:
                summary["assistants_checked"] += 1
                if assistant["vapi_assistant_id"] in remote_ids:
                    continue
                try:
                    self.supabase.table("user_assistants")\
                        .update({"is_active": False, "sync_status": "deleted", "updated_at": utcnow_iso()})\
                        .eq("id", assistant["id"])\
                        .execute()
                    self.supabase.table("user_phone_numbers")\
                        .update({"assigned_assistant_id": None})\
                        .eq("assigned_assistant_id", assistant["id"])\
                        .execute()
                    summary["assistants_removed"] += 1
                    logger.info(f"Assistant {assistant['id']} no longer exists in Vapi; soft-deleted")
                except Exception as e:
                    summary["errors"] += 1
                    logger.error(f"Failed to remove stale assistant {assistant['id']}: {e}")

        phones = self.supabase.table("user_phone_numbers")\
            .select("id, vapi_phone_id, phone_number")\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .execute()
        for phone in phones.data or []:
            if not phone.get("vapi_phone_id"):
                continue
            summary["phone_numbers_checked"] += 1
            try:
                self.vapi.get_phone_number(phone["vapi_phone_id"])
            except VapiError as e:
                if e.vapi_status == 404:
                    self.supabase.table("user_phone_numbers")\
                        .update({"is_active": False, "assigned_assistant_id": None, "updated_at": utcnow_iso()})\
                        .eq("id", phone["id"])\
                        .execute()
                    summary["phone_numbers_removed"] += 1
                    logger.info(f"Phone number {mask_phone(phone.get('phone_number'))} no longer exists in Vapi; deactivated")
                else:
                    summary["errors"] += 1
                    logger.error(f"Could not verify phone number {phone['id']}: {e}")

        self.supabase.table("audit_logs").insert({
            "user_id": user_id,
            "action": "sync_with_vapi",
            "resource_type": "vapi_resources",
            "details": summary,
            "created_at": utcnow_iso(),
        }).execute()
        return summary

    def get_last_sync(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("audit_logs")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("action", "sync_with_vapi")\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def run_scheduled_sync(self) -> Dict[str, Any]:
        """Reconcile every onboarded profile, then drain the queue"""
        if not self.vapi:
            logger.warning("Vapi is not configured; skipping scheduled sync")
            return {
                "users_synced": 0,
                "errors": [],
                "jobs": self.process_pending_jobs(),
                "skipped": True,
                "completed_at": utcnow_iso(),
            }
        result = self.supabase.table("profiles")\
            .select("id")\
            .eq("onboarding_completed", True)\
            .execute()
        user_ids = [row["id"] for row in result.data or [] if row.get("id")]
        users_synced = 0
        errors = []
        for user_id in user_ids:
            try:
                self.reconcile_user_resources(user_id)
                users_synced += 1
            except Exception as e:
                logger.error(f"Scheduled sync failed for user {user_id}: {e}")
                errors.append({"user_id": user_id, "error": str(e)})
        jobs = self.process_pending_jobs()
        return {
            "users_synced": users_synced,
            "errors": errors,
            "jobs": jobs,
            "completed_at": utcnow_iso(),
        }
