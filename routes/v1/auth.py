# routes/v1/auth.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.dependencies import ServiceContainer, get_services
from app.middleware.rate_limit import limiter
from core.errors import BaseError, InternalServerError
from core.utils.validation import form_fields
from domain.schemas.account import AccountResponse
from domain.schemas.auth import ForgotPasswordRequest, LoginRequest, ResetPasswordRequest
from domain.schemas.upload import to_upload_request
from services.accounts import forgot_password, login, register_account, reset_password, verify_email

router = APIRouter()
logger = logging.getLogger(__name__)


def _user(account) -> dict:
    return AccountResponse.from_document(account).model_dump(mode="json")


@router.post("/register", status_code=201, response_model=dict, summary="Register a new account")
@limiter.limit("5/minute")
async def register_route(
    request: Request,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    container: ServiceContainer = Depends(get_services),
):
    """Register an account with an avatar; a verification link is emailed afterwards."""
    try:
        raw = form_fields(name=name, email=email, password=password, bio=bio)
        account = await register_account(container, raw, to_upload_request(avatar))
        return {
            "message": "Account created successfully, please check your email for verification",
            "status": 201,
            "user": _user(account),
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to register account: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("/verify/{token}", response_model=dict, summary="Verify an email address")
@limiter.limit("10/minute")
async def verify_route(
    request: Request,
    token: str,
    container: ServiceContainer = Depends(get_services),
):
    try:
        credential, account = verify_email(container, token)
        return {
            "message": "Email verified successfully",
            "status": 200,
            "token": credential,
            "user": _user(account),
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to verify email: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.post("/login", response_model=dict, summary="Log in with email and password")
@limiter.limit("10/minute")
async def login_route(
    request: Request,
    payload: LoginRequest,
    container: ServiceContainer = Depends(get_services),
):
    try:
        credential, account = login(container, payload.email, payload.password)
        return {
            "message": "Login successful",
            "status": 200,
            "token": credential,
            "user": _user(account),
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to log in: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.post("/forgot-password", response_model=dict, summary="Request a password reset link")
@limiter.limit("5/minute")
async def forgot_password_route(
    request: Request,
    payload: ForgotPasswordRequest,
    container: ServiceContainer = Depends(get_services),
):
    try:
        forgot_password(container, payload.email)
        return {
            "message": "If the email is registered, a password reset link has been sent",
            "status": 200,
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to issue password reset: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.post("/reset-password/{token}", response_model=dict, summary="Set a new password")
@limiter.limit("5/minute")
async def reset_password_route(
    request: Request,
    token: str,
    payload: ResetPasswordRequest,
    container: ServiceContainer = Depends(get_services),
):
    try:
        credential, account = reset_password(container, token, payload.password)
        return {
            "message": "Password reset successfully",
            "status": 200,
            "token": credential,
            "user": _user(account),
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to reset password: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")
