"""
User Model - Defines the user profile stored in the ``customers`` collection.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserBase(BaseModel):
    """Base user model with common fields."""
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)


class UserCreate(UserBase):
    """User creation model with password."""
    password: str = Field(..., min_length=6)


class User(UserBase):
    """User profile as returned by the API."""
    uid: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    is_active: bool = Field(True, alias="isActive")

    # Weak reference to the group chat the user is currently in
    active_group_id: Optional[str] = Field(None, alias="activeGroupId")


class UserInDB(User):
    """User model as stored with hashed password."""
    hashed_password: str = Field(..., alias="hashedPassword")

    def to_public(self) -> User:
        return User(**self.model_dump(exclude={"hashed_password"}))


class Token(BaseModel):
    """JWT token response model."""
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Token payload data."""
    user_id: Optional[str] = None
    username: Optional[str] = None
