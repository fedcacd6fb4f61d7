from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user
from storefront.api.v1.auth import user_payload
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.user import UserUpdate
from storefront.utils.response import success

router = APIRouter()


@router.get("/me", response_model=dict)
def get_profile(current_user: User = Depends(get_current_user)):
    return success(data=user_payload(current_user), message="Profile retrieved")


@router.put("/me", response_model=dict)
def update_profile(
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the saved shipping details used to prefill checkout."""
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return success(data=user_payload(current_user), message="Profile updated")
