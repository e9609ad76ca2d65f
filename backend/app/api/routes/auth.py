"""
Auth API Routes

Account registration and login. Every new account starts on a 30-day trial.
"""

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_auth_service
from app.domain.models import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from app.domain.services import AuthService


router = APIRouter()


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Register a new user.

    Female users must supply guardian email and phone.
    """
    return await service.register(request)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    return await service.login(request)
