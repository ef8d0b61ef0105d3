from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from psych_booking.auth.dependencies import get_current_caller
from psych_booking.core.caller import Caller
from psych_booking.models.user import User
from psych_booking.routes.common import get_db

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(caller: Caller = Depends(get_current_caller), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == caller.user_id).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"id": user.id, "email": user.email, "name": user.name, "role": user.role.value}
