# barberia_core/security.py
# Auth helpers (pbkdf2 + JWT con rol y sucursal)

from datetime import datetime, timedelta
from typing import Optional, Callable

from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from barberia_core.config import SECRET_KEY, ACCESS_MIN
from barberia_core.db.modelos import Usuario, Role
from barberia_core.db.conexion import get_session
from barberia_core.dominio.errores import AuthorizationError


ALGO = "HS256"

pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

oauth2 = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_password_hash(p: str) -> str:
    return pwd.hash(p)


def verify_password(raw: str, hashed: str) -> bool:
    return pwd.verify(raw, hashed)


def create_access_token(usuario: Usuario, minutes: int = ACCESS_MIN) -> str:
    """
    El token lleva rol y sucursal del momento de emisión. Si después
    cambian (traslado de sucursal, cambio de rol), el token deja de valer.
    """
    to_encode = {
        "sub": usuario.email,
        "rol": Role(usuario.rol).value,
        "suc": usuario.sucursal_id,
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGO)


def get_current_user(
    token: str = Depends(oauth2),
    session: Session = Depends(get_session),
) -> Usuario:
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No autenticado",
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGO])
        email: Optional[str] = payload.get("sub")
        if email is None:
            raise credentials_exc
    except JWTError:
        raise credentials_exc

    user = session.exec(
        select(Usuario).where(Usuario.email == email)
    ).first()
    if not user or not user.activo:
        raise credentials_exc
    if payload.get("rol") != Role(user.rol).value or payload.get("suc") != user.sucursal_id:
        raise credentials_exc
    return user


def verificar_sucursal(user: Usuario, sucursal_id: Optional[int]) -> None:
    # admin opera sobre todas; el resto del personal solo sobre la suya
    if user.rol != Role.admin and user.sucursal_id != sucursal_id:
        raise AuthorizationError("Sin permisos sobre esta sucursal")


def require_role(*roles: Role) -> Callable:
    def dep(user: Usuario = Depends(get_current_user)) -> Usuario:
        if roles and user.rol not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Sin permisos para esta operación",
            )
        return user

    return dep


def require_sucursal(*roles: Role) -> Callable:
    """
    Igual que require_role, y además el `sucursal_id` del path tiene que
    ser la sucursal del usuario (salvo admin).
    """
    def dep(sucursal_id: int, user: Usuario = Depends(require_role(*roles))) -> Usuario:
        verificar_sucursal(user, sucursal_id)
        return user

    return dep
