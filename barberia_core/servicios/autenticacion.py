# barberia_core/servicios/autenticacion.py
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session, select

from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import Usuario
from barberia_core.security import (
    verify_password,
    create_access_token,
    get_current_user,
)

router = APIRouter()


@router.post("/login")
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    user = session.exec(
        select(Usuario).where(Usuario.email == form.username)
    ).first()
    if not user or not verify_password(form.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Usuario o contraseña incorrectos",
        )
    if not user.activo:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuario inactivo",
        )

    token = create_access_token(user)
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me")
def leer_perfil(
    user: Usuario = Depends(get_current_user),
):
    return {
        "id": user.id,
        "email": user.email,
        "nombre": user.nombre,
        "rol": user.rol,
        "sucursal_id": user.sucursal_id,
        "activo": user.activo,
    }
