import logging
from typing import Optional

from django.contrib.auth import authenticate, login as django_login, logout as django_logout
from django.contrib.auth.models import User
from ninja import Router, Schema

from .jwt_auth import create_access_token
from .session_auth import get_user_from_request

logger = logging.getLogger(__name__)

router = Router()


class RegisterSchema(Schema):
    username: str
    email: str
    password: str
    first_name: Optional[str] = ""
    last_name: Optional[str] = ""


class LoginSchema(Schema):
    username: str
    password: str


class TokenResponse(Schema):
    access_token: str
    token_type: str = "bearer"


class MessageResponse(Schema):
    message: str


class UserResponse(Schema):
    id: int
    username: str
    email: str
    name: str


@router.post("/register", response={201: TokenResponse, 400: dict})
def register(request, data: RegisterSchema):
    """Register a new user"""
    if User.objects.filter(username=data.username).exists():
        return 400, {"error": "Username already exists"}

    if User.objects.filter(email=data.email).exists():
        return 400, {"error": "Email already exists"}

    # create_user hashes the password with the first PASSWORD_HASHERS entry (bcrypt)
    user = User.objects.create_user(
        username=data.username,
        email=data.email,
        password=data.password,
        first_name=data.first_name or "",
        last_name=data.last_name or ""
    )
    logger.info(f"Registered user {user.id}")

    return 201, {
        "access_token": create_access_token(user),
        "token_type": "bearer"
    }


@router.post("/login", response={200: TokenResponse, 401: dict})
def login(request, data: LoginSchema):
    """Log in: starts a session and returns a JWT token for API clients"""
    user = authenticate(request, username=data.username, password=data.password)

    if user is None:
        return 401, {"error": "Invalid credentials"}

    django_login(request, user)
    return {
        "access_token": create_access_token(user),
        "token_type": "bearer"
    }


@router.post("/logout", response={200: MessageResponse})
def logout(request):
    """End the current session"""
    django_logout(request)
    return {"message": "Logged out"}


@router.get("/me", response={200: UserResponse, 401: dict})
def me(request):
    """Return the authenticated user"""
    user = get_user_from_request(request)
    if not user:
        return 401, {"error": "Authentication required"}

    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "name": user.get_full_name() or user.username,
    }
