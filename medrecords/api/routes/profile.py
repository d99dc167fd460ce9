from typing import Annotated

import pydantic
from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from medrecords.api.deps import ContextDep, DbDep, StorageDep, read_upload
from medrecords.core.config import settings
from medrecords.core.errors import NotFound, ValidationError
from medrecords.schemas.profile import ProfileUpdateForm, ProfileUpdateResponse
from medrecords.services import auth_service
from medrecords.storage.blob_storage import guess_content_type, iter_blob

router = APIRouter()


@router.put("/update", response_model=ProfileUpdateResponse)
def update_profile(
    db: DbDep,
    storage: StorageDep,
    ctx: ContextDep,
    full_name: Annotated[str, Form()],
    email: Annotated[str, Form()],
    gender: Annotated[str, Form()],
    phone_number: Annotated[str, Form()],
    profile_picture: Annotated[UploadFile | None, File()] = None,
):
    try:
        form = ProfileUpdateForm(
            full_name=full_name,
            email=email,
            gender=gender,
            phone_number=phone_number,
        )
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid data provided") from e

    picture = None
    if profile_picture is not None and profile_picture.filename:
        picture = read_upload(profile_picture, settings.max_profile_picture_size)

    user = auth_service.update_profile(
        db,
        storage,
        user_id=ctx.user_id,
        full_name=form.full_name,
        email=form.email,
        gender=form.gender,
        phone_number=form.phone_number,
        picture=picture,
    )
    return ProfileUpdateResponse(success=True, message="Profile updated successfully", user=user)


@router.get("/picture/{user_id}")
def profile_picture(user_id: str, db: DbDep, storage: StorageDep):
    user = auth_service.get_user(db, user_id)
    if user is None or not user.profile_image or not storage.exists(user.profile_image):
        raise NotFound("Profile picture not found")
    return StreamingResponse(
        iter_blob(storage.open(user.profile_image)),
        media_type=guess_content_type(user.profile_image),
        headers={"Cache-Control": "public, max-age=3600"},
    )
