"""
Keeps Task.assignedUser and User.pendingTasks consistent.

The task record owns the assignment; a user's pendingTasks is a derived
index of the incomplete tasks pointing at that user. MongoDB gives us no
transaction across the two collections, so every operation here is a short
sequence of single-document writes:

    1. remove the task id from the previous assignee
    2. write the task
    3. add/remove the task id on the new assignee

Each step is idempotent, so re-running an operation after a failure
finishes the job. Concurrent requests touching the same records can still
interleave; the next reconciling write (task replace or user replace)
repairs the derived side. No step is retried and nothing is rolled back.
"""
import enum
import logging
from typing import List, Optional

from pymongo.database import Database

from database import TASKS, USERS, Repository
from schemas import UNASSIGNED, UNASSIGNED_NAME

logger = logging.getLogger(__name__)


class SyncOutcome(str, enum.Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"


class Synchronizer:
    def __init__(self, db: Database):
        self.users = Repository(db, USERS)
        self.tasks = Repository(db, TASKS)

    def assign_task_to_user(self, task_id: str, user: dict) -> SyncOutcome:
        """Point the task at `user` and fix both pending sets. Safe to repeat."""
        task = self.tasks.find_by_id(task_id)
        if task is None:
            logger.debug("Assign skipped, task missing", extra={"task_id": task_id})
            return SyncOutcome.SKIPPED

        tid = str(task["_id"])
        uid = str(user["_id"])
        previous = task.get("assignedUser") or UNASSIGNED
        if previous and previous != uid:
            self._remove_pending(previous, tid)

        self.tasks.update(tid, {"$set": {
            "assignedUser": uid,
            "assignedUserName": user["name"],
        }})
        self._apply_pending_state(uid, tid, task.get("completed", False))
        logger.debug("Task assigned", extra={"task_id": tid, "user_id": uid})
        return SyncOutcome.UPDATED

    def unassign_task(self, task_id: str) -> SyncOutcome:
        task = self.tasks.find_by_id(task_id)
        if task is None:
            logger.debug("Unassign skipped, task missing", extra={"task_id": task_id})
            return SyncOutcome.SKIPPED

        tid = str(task["_id"])
        if task.get("assignedUser"):
            self._remove_pending(task["assignedUser"], tid)
        self.tasks.update(tid, {"$set": {
            "assignedUser": UNASSIGNED,
            "assignedUserName": UNASSIGNED_NAME,
        }})
        logger.debug("Task unassigned", extra={"task_id": tid})
        return SyncOutcome.UPDATED

    def reconcile_after_task_write(self, task: dict, previous_assigned_user: Optional[str]):
        """Fix pending sets after a task document was replaced in full."""
        tid = str(task["_id"])
        current = task.get("assignedUser") or UNASSIGNED
        if previous_assigned_user and previous_assigned_user != current:
            self._remove_pending(previous_assigned_user, tid)

        if current:
            self._apply_pending_state(current, tid, task.get("completed", False))
        else:
            # Stray references left by an interrupted earlier sequence
            cleared = self.users.update_many({"pendingTasks": tid}, {"$pull": {"pendingTasks": tid}})
            if cleared:
                logger.info(f"Cleared {cleared} stray reference(s)", extra={"task_id": tid})

    def reconcile_user_pending_set(self, user: dict) -> List[str]:
        """Recompute pendingTasks from task state and store it."""
        uid = str(user["_id"])
        pending = self.tasks.find(
            {"assignedUser": uid, "completed": False},
            projection={"_id": True},
        )
        pending_ids = [str(t["_id"]) for t in pending]
        self.users.update(uid, {"$set": {"pendingTasks": pending_ids}})
        user["pendingTasks"] = pending_ids
        return pending_ids

    def _apply_pending_state(self, user_id: str, task_id: str, completed: bool):
        if completed:
            self._remove_pending(user_id, task_id)
        else:
            self.users.update(user_id, {"$addToSet": {"pendingTasks": task_id}})

    def _remove_pending(self, user_id: str, task_id: str):
        self.users.update(user_id, {"$pull": {"pendingTasks": task_id}})
