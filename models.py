from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from config import (CATEGORIES, DEFAULT_CATEGORY, MAX_TAGS, POST_CONTENT_MIN_LENGTH,
                    POST_TITLE_MAX_LENGTH, POST_TITLE_MIN_LENGTH, REPLY_CONTENT_MIN_LENGTH)


def split_tags(v: Any) -> List[str]:
    """Accept a list of tags or the comma-separated text of a tag input."""
    if v is None:
        return []
    if isinstance(v, str):
        v = v.split(",")
    return [str(tag).strip() for tag in v if str(tag).strip()]


def to_timestamp(value: Union[datetime, float, None]) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return float(value)


# =============================================================================
# CLIENT PAYLOADS
# =============================================================================

class PostCreate(BaseModel):
    title: str
    content: str
    category: str = DEFAULT_CATEGORY
    tags: List[str] = Field(default_factory=list)

    @field_validator('tags', mode='before')
    @classmethod
    def normalize_tags(cls, v):
        return split_tags(v)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump()


class PostUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator('tags', mode='before')
    @classmethod
    def normalize_tags(cls, v):
        return None if v is None else split_tags(v)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ReplyCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    post_id: str = Field(alias="postId")
    content: str
    parent_reply_id: Optional[str] = Field(default=None, alias="parentReplyId")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ReplyUpdate(BaseModel):
    content: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# =============================================================================
# STORE RECORDS
# =============================================================================

class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    uid: str = ""
    user_email: str = Field(default="", validation_alias=AliasChoices("userEmail", "user_email"))
    content: str = ""
    created_at: Union[datetime, float] = Field(validation_alias=AliasChoices("createdAt", "created_at"))
    updated_at: Optional[Union[datetime, float]] = Field(
        default=None, validation_alias=AliasChoices("updatedAt", "updated_at"))

    @field_validator('id', mode='before')
    @classmethod
    def stringify_id(cls, v):
        if isinstance(v, dict) and "$oid" in v:
            return v["$oid"]
        return str(v) if isinstance(v, int) else v


class PostRecord(_Record):
    title: str = ""
    category: str = DEFAULT_CATEGORY
    tags: List[str] = Field(default_factory=list)

    @field_validator('tags', mode='before')
    @classmethod
    def normalize_tags(cls, v):
        return split_tags(v)


class ReplyRecord(_Record):
    post_id: str = Field(validation_alias=AliasChoices("postId", "post_id"))
    parent_reply_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("parentReplyId", "parent_reply_id"))

    @field_validator('post_id', mode='before')
    @classmethod
    def stringify_post_id(cls, v):
        return str(v) if isinstance(v, int) else v


class CurrentUserRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uid: str
    email: str = ""
    name: Optional[str] = None


# =============================================================================
# REFERENCE STORE VALIDATION
# =============================================================================

def _check_title(v: str) -> str:
    v = v.strip()
    if len(v) < POST_TITLE_MIN_LENGTH or len(v) > POST_TITLE_MAX_LENGTH:
        raise ValueError(f'Title must be {POST_TITLE_MIN_LENGTH}-{POST_TITLE_MAX_LENGTH} characters')
    return v


def _check_post_content(v: str) -> str:
    v = v.strip()
    if len(v) < POST_CONTENT_MIN_LENGTH:
        raise ValueError(f'Content must be at least {POST_CONTENT_MIN_LENGTH} characters')
    return v


def _check_category(v: str) -> str:
    if v not in CATEGORIES:
        raise ValueError(f'Category must be one of: {", ".join(CATEGORIES)}')
    return v


def _check_tags(v: List[str]) -> List[str]:
    tags = split_tags(v)
    if len(tags) > MAX_TAGS:
        raise ValueError(f'At most {MAX_TAGS} tags are allowed')
    return tags


def _check_reply_content(v: str) -> str:
    v = v.strip()
    if len(v) < REPLY_CONTENT_MIN_LENGTH:
        raise ValueError(f'Reply must be at least {REPLY_CONTENT_MIN_LENGTH} characters')
    return v


class PostSubmission(BaseModel):
    title: str
    content: str
    category: str = DEFAULT_CATEGORY
    tags: List[str] = Field(default_factory=list)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return _check_title(v)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return _check_post_content(v)

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        return _check_category(v)

    @field_validator('tags', mode='before')
    @classmethod
    def validate_tags(cls, v):
        return _check_tags(v)


class PostEdit(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return v if v is None else _check_title(v)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return v if v is None else _check_post_content(v)

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        return v if v is None else _check_category(v)

    @field_validator('tags', mode='before')
    @classmethod
    def validate_tags(cls, v):
        return v if v is None else _check_tags(v)


class ReplySubmission(BaseModel):
    postId: str
    content: str
    parentReplyId: Optional[str] = None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return _check_reply_content(v)


class ReplyEdit(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        return _check_reply_content(v)
