"""
Authentication API endpoints.
"""

from datetime import timedelta

from fastapi import APIRouter, HTTPException, status, Depends

from ..models import UserCreate, Token, User
from ..utils.auth import (
    authenticate_user,
    create_access_token,
    get_password_hash,
    create_user_in_db,
    get_current_user_id,
)
from ..config import settings
from ..storage import UsernameTakenError, get_user_storage

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate):
    """
    Register a new user.

    Raises:
        HTTPException: If username already exists
    """
    try:
        user = await create_user_in_db(
            username=user_data.username,
            hashed_password=get_password_hash(user_data.password),
            email=user_data.email,
            display_name=user_data.display_name,
        )
    except UsernameTakenError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered"
        )

    return user.to_public()


@router.post("/login", response_model=Token)
async def login(username: str, password: str):
    """
    Login and get access token.

    Raises:
        HTTPException: If authentication fails
    """
    user = await authenticate_user(username, password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": user.uid, "username": user.username},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes)
    )
    return Token(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=User)
async def get_current_user(user_id: str = Depends(get_current_user_id)):
    """
    Get current user information, including the active group pointer.

    Raises:
        HTTPException: If user not found
    """
    user = await get_user_storage().get_user(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user.to_public()
