"""
Collection services for users and tasks.

Services validate input, write the primary record and then hand any change
to the assignment relationship to the Synchronizer. They never touch
assignedUser, assignedUserName or pendingTasks directly.
"""
import logging
from typing import Optional, Union

from pymongo.database import Database

from database import TASKS, USERS, Repository, serialize
from errors import NotFoundError, ValidationError
from query import ListQuery
from schemas import UNASSIGNED, UNASSIGNED_NAME, Task, TaskInput, User, UserInput
from synchronizer import Synchronizer

logger = logging.getLogger(__name__)


def run_list_query(repo: Repository, query: ListQuery) -> Union[int, list]:
    if query.count:
        return repo.count(query.where)
    docs = repo.find(
        query.where,
        projection=query.projection,
        sort=query.sort,
        skip=query.skip,
        limit=query.limit,
    )
    return [serialize(d) for d in docs]


class TaskService:
    def __init__(self, db: Database):
        self.tasks = Repository(db, TASKS)
        self.users = Repository(db, USERS)
        self.sync = Synchronizer(db)

    def list(self, query: ListQuery):
        return run_list_query(self.tasks, query)

    def get(self, task_id: str, projection: Optional[dict] = None) -> dict:
        task = self.tasks.find_by_id(task_id, projection)
        if task is None:
            raise NotFoundError("Task", task_id)
        return serialize(task)

    def create(self, payload: TaskInput) -> dict:
        assignee = self._resolve_assignee(payload.assignedUser)
        doc = self._build_document(payload, assignee)
        task = self.tasks.insert(doc)
        tid = str(task["_id"])
        logger.info("Task created", extra={"task_id": tid})

        if assignee is not None:
            self.sync.assign_task_to_user(tid, assignee)
            task = self.tasks.find_by_id(tid) or task
        return serialize(task)

    def replace(self, task_id: str, payload: TaskInput) -> dict:
        existing = self.tasks.find_by_id(task_id)
        if existing is None:
            raise NotFoundError("Task", task_id)
        previous_assignee = existing.get("assignedUser") or UNASSIGNED
        assignee = self._resolve_assignee(payload.assignedUser)

        doc = self._build_document(payload, assignee)
        doc["_id"] = existing["_id"]
        if "createdAt" in existing:
            doc["createdAt"] = existing["createdAt"]
        self.tasks.replace(doc)
        logger.info("Task replaced", extra={"task_id": task_id})

        self.sync.reconcile_after_task_write(doc, previous_assignee)
        return serialize(doc)

    def delete(self, task_id: str):
        if self.tasks.find_by_id(task_id, {"_id": True}) is None:
            raise NotFoundError("Task", task_id)
        self.sync.unassign_task(task_id)
        self.tasks.remove(task_id)
        logger.info("Task deleted", extra={"task_id": task_id})

    def _resolve_assignee(self, user_id: str) -> Optional[dict]:
        if not user_id:
            return None
        user = self.users.find_by_id(user_id)
        if user is None:
            raise ValidationError("assignedUser does not reference a valid user", field="assignedUser")
        return user

    @staticmethod
    def _build_document(payload: TaskInput, assignee: Optional[dict]) -> dict:
        # assignedUserName is always derived from the assignee, never from input
        task = Task(
            name=payload.name,
            description=payload.description,
            deadline=payload.deadline,
            completed=payload.completed,
            assignedUser=str(assignee["_id"]) if assignee else UNASSIGNED,
            assignedUserName=assignee["name"] if assignee else UNASSIGNED_NAME,
        )
        return task.model_dump()


class UserService:
    def __init__(self, db: Database):
        self.users = Repository(db, USERS)
        self.tasks = Repository(db, TASKS)
        self.sync = Synchronizer(db)

    def list(self, query: ListQuery):
        return run_list_query(self.users, query)

    def get(self, user_id: str, projection: Optional[dict] = None) -> dict:
        user = self.users.find_by_id(user_id, projection)
        if user is None:
            raise NotFoundError("User", user_id)
        return serialize(user)

    def create(self, payload: UserInput) -> dict:
        # pendingTasks starts empty; requested ids are applied through assignment
        user = self.users.insert(User(name=payload.name, email=payload.email).model_dump())
        uid = str(user["_id"])
        logger.info("User created", extra={"user_id": uid})

        if payload.pendingTasks:
            for tid in payload.pendingTasks:
                self.sync.assign_task_to_user(tid, user)
            user = self.users.find_by_id(uid) or user
        return serialize(user)

    def replace(self, user_id: str, payload: UserInput) -> dict:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        uid = str(user["_id"])

        self.users.update(uid, {"$set": {"name": payload.name, "email": payload.email}})
        user["name"] = payload.name
        user["email"] = payload.email

        # The client list is an instruction set; the stored field is recomputed below
        desired = list(dict.fromkeys(payload.pendingTasks))
        assigned = self.tasks.find({"assignedUser": uid}, projection={"_id": True})
        for task in assigned:
            tid = str(task["_id"])
            if tid not in desired:
                self.sync.unassign_task(tid)
        for tid in desired:
            self.sync.assign_task_to_user(tid, user)

        self.sync.reconcile_user_pending_set(user)
        logger.info("User replaced", extra={"user_id": uid})
        return serialize(self.users.find_by_id(uid) or user)

    def delete(self, user_id: str):
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        uid = str(user["_id"])

        for task in self.tasks.find({"assignedUser": uid}, projection={"_id": True}):
            self.sync.unassign_task(str(task["_id"]))
        self.users.remove(uid)
        logger.info("User deleted", extra={"user_id": uid})
