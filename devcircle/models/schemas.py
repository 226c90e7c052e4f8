import re
from pydantic import BaseModel, Field, validator
from typing import List, Literal, Optional

NAME_RE = re.compile(r"^[A-Za-z]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Public user fields exposed to other users (feeds, connection lists)
PUBLIC_USER_FIELDS = {"firstName": 1, "lastName": 1, "skills": 1, "age": 1, "gender": 1}
CONTACT_USER_FIELDS = {"firstName": 1, "lastName": 1, "email": 1}


def _check_name(v: str, label: str) -> str:
    v = v.strip()
    if not 4 <= len(v) <= 25:
        raise ValueError(f"{label} must be between 4 and 25 characters")
    if not NAME_RE.match(v):
        raise ValueError(f"{label} should contain only letters")
    return v


def _check_password(v: str) -> str:
    if (
        len(v) < 8
        or not re.search(r"[a-z]", v)
        or not re.search(r"[A-Z]", v)
        or not re.search(r"\d", v)
        or not re.search(r"[^A-Za-z0-9]", v)
    ):
        raise ValueError("Please enter a strong password")
    return v


def _normalize_skills(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    return [s.strip().lower() for s in v if s and s.strip()]


# -------- Users --------
class RegisterPayload(BaseModel):
    firstName: str
    lastName: str
    email: str
    password: str
    skills: List[str] = []
    age: Optional[int] = Field(default=None, ge=18)
    gender: Optional[str] = None

    @validator("firstName")
    def validate_first_name(cls, v):
        return _check_name(v, "First name")

    @validator("lastName")
    def validate_last_name(cls, v):
        return _check_name(v, "Last name")

    @validator("email")
    def validate_email(cls, v):
        v = v.strip().lower()
        if not EMAIL_RE.match(v):
            raise ValueError("Invalid email format")
        return v

    @validator("password")
    def validate_password(cls, v):
        return _check_password(v)

    @validator("skills")
    def validate_skills(cls, v):
        return _normalize_skills(v)


class LoginPayload(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    """Only these fields may be changed through the profile endpoint"""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    password: Optional[str] = None
    skills: Optional[List[str]] = None
    age: Optional[int] = Field(default=None, ge=18)

    @validator("firstName")
    def validate_first_name(cls, v):
        return v if v is None else _check_name(v, "First name")

    @validator("lastName")
    def validate_last_name(cls, v):
        return v if v is None else _check_name(v, "Last name")

    @validator("password")
    def validate_password(cls, v):
        return v if v is None else _check_password(v)

    @validator("skills")
    def validate_skills(cls, v):
        return _normalize_skills(v)


# -------- Chat --------
class ConversationCreate(BaseModel):
    participantId: Optional[str] = None


class MessageCreate(BaseModel):
    content: Optional[str] = None


MAX_MESSAGE_LENGTH = 1000


# -------- Code documents --------
SharePermission = Literal["view", "edit"]


class CodeDocumentCreate(BaseModel):
    title: str
    content: str = ""
    language: str = "javascript"
    isPublic: bool = False

    @validator("title")
    def validate_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v


class CodeDocumentUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    language: Optional[str] = None
    isPublic: Optional[bool] = None

    @validator("title")
    def validate_title(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v


class ShareRequest(BaseModel):
    userId: str
    permission: SharePermission = "view"
