# crear_admin.py
import os

from sqlmodel import Session, select

from barberia_core.db.conexion import engine, init_db
from barberia_core.db.modelos import Usuario, Role, Sucursal
from barberia_core.security import get_password_hash


def main():
    init_db()

    email = os.getenv("ADMIN_EMAIL", "admin@barberia.com")
    nombre = "Admin"
    password_plano = os.getenv("ADMIN_PASSWORD", "admin")

    with Session(engine, expire_on_commit=False) as session:
        sucursal = session.exec(select(Sucursal)).first()
        if not sucursal:
            sucursal = Sucursal(
                nombre="Sucursal Centro",
                horario_apertura={"default": {"inicio": "09:00", "fin": "18:00"}},
            )
            session.add(sucursal)
            session.commit()
            session.refresh(sucursal)
            print(f"Sucursal creada: id={sucursal.id}")

        existente = session.exec(
            select(Usuario).where(Usuario.email == email)
        ).first()

        if existente:
            # Si ya existe, solo le cambio la contraseña
            existente.password_hash = get_password_hash(password_plano)
            existente.rol = Role.admin
            existente.activo = True
            session.add(existente)
            session.commit()
            print(f"Contraseña ACTUALIZADA para {email}.")
            return

        user = Usuario(
            email=email,
            nombre=nombre,
            password_hash=get_password_hash(password_plano),
            rol=Role.admin,
            sucursal_id=sucursal.id,
            activo=True,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        print(f"Usuario admin creado: id={user.id}, email={user.email}")


if __name__ == "__main__":
    main()
