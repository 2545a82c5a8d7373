"""
Database Schemas for Llama.io Tasks

Each stored model below describes a MongoDB collection ("users", "tasks").
Request bodies are decoded into the separate *Input models, which never
expose server-computed fields such as assignedUserName or createdAt.
"""
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from query import coerce_bool, parse_deadline

UNASSIGNED = ""
UNASSIGNED_NAME = "unassigned"


class User(BaseModel):
    """
    Users collection schema
    Collection: "users"
    """
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1, description="Unique email address")
    pendingTasks: List[str] = Field(
        default_factory=list,
        description="Ids of incomplete tasks assigned to this user (derived)",
    )


class Task(BaseModel):
    """
    Tasks collection schema
    Collection: "tasks"
    """
    name: str = Field(..., min_length=1)
    description: str = ""
    deadline: datetime
    completed: bool = False
    assignedUser: str = Field(default=UNASSIGNED, description="User id, or empty when unassigned")
    assignedUserName: str = Field(default=UNASSIGNED_NAME, description="Copy of the assignee's name")


# Request bodies (not collections)
class UserInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    pendingTasks: List[str] = Field(default_factory=list)

    @field_validator("pendingTasks", mode="before")
    @classmethod
    def normalize_pending(cls, v):
        if not isinstance(v, list):
            return []
        return [str(tid) for tid in v]


class TaskInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    description: str = ""
    deadline: datetime
    completed: bool = False
    assignedUser: str = UNASSIGNED

    @field_validator("description", "assignedUser", mode="before")
    @classmethod
    def default_non_strings(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator("completed", mode="before")
    @classmethod
    def normalize_completed(cls, v):
        return coerce_bool(v, False)

    @field_validator("deadline", mode="before")
    @classmethod
    def normalize_deadline(cls, v):
        parsed = parse_deadline(v)
        if parsed is None:
            raise ValueError("Invalid deadline")
        return parsed


class Envelope(BaseModel):
    message: str = "OK"
    data: Any = None
