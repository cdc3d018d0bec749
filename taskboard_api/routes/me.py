from fastapi import APIRouter, Depends

from taskboard_api.auth import require_user
from taskboard_api.models import User

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def whoami(user: User = Depends(require_user)):
    return {
        "id": user.id,
        "subject": user.subject,
        "username": user.username,
        "email": user.email,
        "role": user.role,
    }
