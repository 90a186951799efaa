from typing import List

from pydantic import BaseModel, EmailStr, Field


class IdentityClaims(BaseModel):
    """Authenticated subject resolved from a bearer credential."""
    subject_id: str = Field(..., description="Account ID the credential was issued to")
    display_name: str = Field("", description="Name of the account")
    email: str = Field("", description="Email address of the account")
    verified: bool = Field(False, description="Whether the email address has been verified")
    roles: List[str] = Field(default_factory=lambda: ["user"], description="Roles assigned to the account")

    def has_role(self, role: str) -> bool:
        return role in self.roles


class LoginRequest(BaseModel):
    """Schema for password login"""
    email: EmailStr = Field(..., description="Registered email address")
    password: str = Field(..., min_length=1, max_length=255, description="Account password")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr = Field(..., max_length=255, description="Email address to send the reset link to")


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=8, max_length=255, description="New password")
