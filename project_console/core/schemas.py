from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, EmailStr


# =========================
# Enums
# =========================
class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    VIEWER = "viewer"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


# =========================
# USER
# =========================
class UserBase(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.VIEWER


# Signup never carries a role; new accounts start as viewers
class CreateUser(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    model_config = ConfigDict(from_attributes=True)


class RoleUpdate(BaseModel):
    role: UserRole


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(UserBase):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =========================
# PROJECT RECORDS
# =========================
class SearchRequest(BaseModel):
    object_type: str = Field(min_length=1, max_length=64)
    search_term: Optional[str] = None


class CloneRequest(BaseModel):
    object_type: str = Field(min_length=1, max_length=64)
    values: Dict[str, Any]


class ProjectCreate(BaseModel):
    # Display-keyed form values, e.g. {"projectName": "...", "projectType": "..."}
    values: Dict[str, Any]


class ProjectRecordResponse(BaseModel):
    id: int
    name: str
    payload: Dict[str, Any]
    remote_id: Optional[str] = None
    sync_status: SyncStatus
    last_error: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SyncSummary(BaseModel):
    attempted: int
    synced: int
    failed: int
    records: List[ProjectRecordResponse]
