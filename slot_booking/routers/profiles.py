# slot_booking/routers/profiles.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..core.errors import NotFound
from ..database import get_db

router = APIRouter(
    prefix="/profile",
    tags=["Profile"],
)


def _get_profile_or_404(db: Session, army_number: str):
    profile = crud.get_profile(db, army_number)
    if profile is None:
        raise NotFound("Profile not found")
    return profile


@router.get("/{army_number}", response_model=schemas.ProfileResponse)
def read_profile(army_number: str, db: Session = Depends(get_db)):
    return schemas.ProfileResponse.model_validate(_get_profile_or_404(db, army_number))


@router.post("", response_model=schemas.ProfileSaveResponse)
def save_profile(payload: schemas.ProfileSave, db: Session = Depends(get_db)):
    profile = crud.upsert_profile(db, payload.army_number, payload.name, payload.mobile)
    return schemas.ProfileSaveResponse(
        message="Profile saved successfully",
        profile=schemas.ProfileResponse.model_validate(profile),
    )


@router.delete("/{army_number}", response_model=schemas.MessageResponse)
def delete_profile(army_number: str, db: Session = Depends(get_db)):
    crud.delete_profile(db, _get_profile_or_404(db, army_number))
    return {"message": "Profile deleted successfully"}
