from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends
from starlette.requests import HTTPConnection
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import (
    JWT_SECRET,
    JWT_ALGORITHM,
    CAMPUS_LAT,
    CAMPUS_LNG,
    CAMPUS_RADIUS_M,
)
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
)
from app.core.geo import Coordinates, Geofence
from app.core.realtime import PresenceBroadcaster

security = HTTPBearer(
    scheme_name="Bearer token",
    description="Access token issued by the identity service",
    auto_error=False,
)

ROLE_INSTRUCTOR = "instructor"
ROLE_STUDENT = "student"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str
    name: Optional[str] = None


def decode_access_token(token: str) -> CurrentUser:
    """Verify a bearer token and map its claims to a CurrentUser"""
    if not JWT_SECRET:
        raise ConfigurationError("JWT_SECRET", "Token secret not configured on server")

    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid or expired token")

    subject = claims.get("sub")
    role = claims.get("role")
    if not subject or role not in (ROLE_INSTRUCTOR, ROLE_STUDENT):
        raise AuthenticationError("Token is missing required claims")

    return CurrentUser(id=str(subject), role=role, name=claims.get("name"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    if credentials is None or not credentials.credentials.strip():
        raise AuthenticationError("Access denied. No token provided.")
    return decode_access_token(credentials.credentials)


async def get_current_instructor(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if user.role != ROLE_INSTRUCTOR:
        raise AuthorizationError("Access denied. Instructors only.")
    return user


async def get_current_student(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if user.role != ROLE_STUDENT:
        raise AuthorizationError("Access denied. Students only.")
    return user


def get_broadcaster(conn: HTTPConnection) -> PresenceBroadcaster:
    return conn.app.state.broadcaster


def get_geofence() -> Geofence:
    return Geofence(Coordinates(CAMPUS_LAT, CAMPUS_LNG), CAMPUS_RADIUS_M)
