from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.user import Role


def _validate_password(v: str) -> str:
    errors = []
    if len(v) < 8:
        errors.append("at least 8 characters")
    if not any(c.isalpha() for c in v):
        errors.append("one letter")
    if not any(c.isdigit() for c in v):
        errors.append("one digit")
    if errors:
        raise ValueError("Password must contain: " + ", ".join(errors))
    return v


class RegisterRequest(BaseModel):
    # Resident id printed on the management office's resident card
    resident_code: str
    phone_number: str
    email: EmailStr
    password: str = Field(min_length=8)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _validate_password(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Caller(BaseModel):
    """Who is making the request, as resolved from the access token."""

    account_id: int
    role: Role
    apartment_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class AccountProfile(BaseModel):
    id: int
    email: str
    full_name: str
    role: Role
    avatar: str | None = None
    apartment_id: int | None = None


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: AccountProfile


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
