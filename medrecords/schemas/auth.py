from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    gender: str = Field(..., min_length=1)  # Male | Female, parsed case-insensitively by the service
    phone_number: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=6)


class PublicUser(BaseModel):
    id: str
    full_name: str
    email: str
    gender: str
    phone_number: str
    profile_image: str = ""


class AuthResponse(BaseModel):
    success: bool
    message: str
    user: PublicUser | None = None
    session_token: str | None = None


class MessageResponse(BaseModel):
    success: bool
    message: str
