"""
OutreachStore - Redis persistence for patients, sequences, check-ins and
callback tasks

Each collection is one Redis hash per owner (``outreach:{owner}:{collection}``)
mapping item id to the item's JSON. The scheduling core never touches Redis
directly; jobs load a snapshot here, run the pure functions and write back.
"""
import json
import logging
from typing import Iterable, List, Optional, Type

import redis

from config.redis import create_redis_connection

from .models import CallbackTask, Patient, ProactiveSequence, ScheduledCheckIn

logger = logging.getLogger("outreach-store")

PATIENTS = "patients"
SEQUENCES = "sequences"
CHECK_INS = "check_ins"
CALLBACK_TASKS = "callback_tasks"


class OutreachStore:
    """Loads and saves outreach collections keyed by owner"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: str = "outreach"):
        self.redis_client = redis_client if redis_client is not None else create_redis_connection()
        self.key_prefix = key_prefix

    def key(self, owner: str, collection: str) -> str:
        return f"{self.key_prefix}:{owner}:{collection}"

    def _load(self, owner: str, collection: str, model: Type) -> list:
        raw_items = self.redis_client.hgetall(self.key(owner, collection))
        items = []
        for item_id, raw in raw_items.items():
            try:
                items.append(model.from_dict(json.loads(raw)))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Error deserializing {collection} item {item_id} for {owner}: {e}")
        return items

    def _save(self, owner: str, collection: str, items: Iterable):
        mapping = {item.id: json.dumps(item.to_dict()) for item in items}
        if mapping:
            self.redis_client.hset(self.key(owner, collection), mapping=mapping)
        return len(mapping)

    def _replace(self, owner: str, collection: str, items: Iterable):
        mapping = {item.id: json.dumps(item.to_dict()) for item in items}
        key = self.key(owner, collection)
        pipeline = self.redis_client.pipeline(transaction=True)
        pipeline.delete(key)
        if mapping:
            pipeline.hset(key, mapping=mapping)
        pipeline.execute()
        return len(mapping)

    def _delete(self, owner: str, collection: str, item_id: str) -> bool:
        return bool(self.redis_client.hdel(self.key(owner, collection), item_id))

    # Patients and sequences are written by the dashboard; the scheduler reads them

    def load_patients(self, owner: str) -> List[Patient]:
        return self._load(owner, PATIENTS, Patient)

    def save_patients(self, owner: str, patients: Iterable[Patient]) -> int:
        return self._save(owner, PATIENTS, patients)

    def delete_patient(self, owner: str, patient_id: str) -> bool:
        return self._delete(owner, PATIENTS, patient_id)

    def load_sequences(self, owner: str) -> List[ProactiveSequence]:
        return self._load(owner, SEQUENCES, ProactiveSequence)

    def save_sequences(self, owner: str, sequences: Iterable[ProactiveSequence]) -> int:
        return self._save(owner, SEQUENCES, sequences)

    # Check-ins

    def load_check_ins(self, owner: str) -> List[ScheduledCheckIn]:
        check_ins = self._load(owner, CHECK_INS, ScheduledCheckIn)
        return sorted(check_ins, key=lambda ci: (ci.scheduled_for, ci.id))

    def save_check_ins(self, owner: str, check_ins: Iterable[ScheduledCheckIn]) -> int:
        """Upsert individual check-ins (e.g. after dispatch)"""
        return self._save(owner, CHECK_INS, check_ins)

    def replace_check_ins(self, owner: str, check_ins: Iterable[ScheduledCheckIn]) -> int:
        """Replace the whole check-in set atomically with a reconciled one"""
        count = self._replace(owner, CHECK_INS, check_ins)
        logger.info(f"Stored {count} check-ins for {owner}")
        return count

    # Callback tasks

    def load_callback_tasks(self, owner: str) -> List[CallbackTask]:
        tasks = self._load(owner, CALLBACK_TASKS, CallbackTask)
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def save_callback_tasks(self, owner: str, tasks: Iterable[CallbackTask]) -> int:
        return self._save(owner, CALLBACK_TASKS, tasks)

    def get_callback_task(self, owner: str, task_id: str) -> Optional[CallbackTask]:
        raw = self.redis_client.hget(self.key(owner, CALLBACK_TASKS), task_id)
        if not raw:
            return None
        return CallbackTask.from_dict(json.loads(raw))

    def delete_callback_task(self, owner: str, task_id: str) -> bool:
        return self._delete(owner, CALLBACK_TASKS, task_id)
