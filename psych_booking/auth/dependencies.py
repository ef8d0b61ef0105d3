from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError
from sqlalchemy.orm import Session

from psych_booking.auth import jwt_handler
from psych_booking.core.caller import Caller
from psych_booking.models.user import User
from psych_booking.routes.common import get_db

security = HTTPBearer()


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Caller:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")
    return Caller(user_id=user.id, role=user.role)
