from pydantic import BaseModel, EmailStr, Field

from medrecords.schemas.auth import PublicUser


class ProfileUpdateForm(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    gender: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1, max_length=50)


class ProfileUpdateResponse(BaseModel):
    success: bool
    message: str
    user: PublicUser | None = None
