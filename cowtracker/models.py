from datetime import datetime, timezone

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Column, Field, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class Role(SQLModel, table=True):
    """Role catalogue (admin, user/worker, veterinario)"""

    __tablename__ = "rol"

    id_rol: int | None = Field(default=None, primary_key=True)
    descripcion: str = Field(max_length=50)


class UserBase(SQLModel):
    primer_nombre: str | None = Field(default=None, max_length=100)
    primer_apellido: str | None = Field(default=None, max_length=100)
    telefono: str | None = Field(default=None, max_length=30)


class User(UserBase, table=True):
    """Application user, linked to the identity provider by id_autentificar"""

    __tablename__ = "usuario"

    id_usuario: int | None = Field(default=None, primary_key=True)
    id_autentificar: str = Field(index=True, unique=True)
    correo: str | None = Field(default=None, max_length=255)
    id_rol: int | None = Field(default=None, foreign_key="rol.id_rol")


class UserUpdate(SQLModel):
    """Schema for profile updates - all fields optional"""

    primer_nombre: str | None = Field(default=None, min_length=1, max_length=100)
    primer_apellido: str | None = Field(default=None, min_length=1, max_length=100)
    telefono: str | None = Field(default=None, max_length=30)


class UserResponse(UserBase):
    id_usuario: int
    id_autentificar: str
    correo: str | None = None
    id_rol: int | None = None

    model_config = {"from_attributes": True}


class FarmBase(SQLModel):
    """Base model with shared fields"""

    nombre: str = Field(min_length=1, max_length=200, index=True)
    tamano: float = Field(default=0, ge=0)


class Farm(FarmBase, table=True):
    """Database model"""

    __tablename__ = "finca"

    id_finca: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class FarmCreate(FarmBase):
    pass


class FarmUpdate(SQLModel):
    nombre: str | None = Field(default=None, min_length=1, max_length=200)
    tamano: float | None = Field(default=None, ge=0)


class FarmResponse(FarmBase):
    id_finca: int
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class FarmMembership(SQLModel, table=True):
    """Link between a user and a farm (usuario_finca)"""

    __tablename__ = "usuario_finca"
    __table_args__ = (UniqueConstraint("id_usuario", "id_finca"),)

    id_usuario_finca: int | None = Field(default=None, primary_key=True)
    id_usuario: int = Field(foreign_key="usuario.id_usuario", index=True)
    id_finca: int = Field(foreign_key="finca.id_finca", index=True)


class MembershipRequest(SQLModel):
    id_usuario: int
    id_finca: int


class FarmMemberRequest(SQLModel):
    id_usuario: int


class MembershipResponse(SQLModel):
    id_usuario_finca: int
    id_usuario: int
    id_finca: int

    model_config = {"from_attributes": True}


class CattleBase(SQLModel):
    nombre: str = Field(min_length=1, max_length=200)
    numero_identificacion: str | None = Field(default=None, max_length=100)
    precio_compra: float = Field(default=0, ge=0)
    nota: str | None = None
    id_finca: int | None = Field(default=None, foreign_key="finca.id_finca", index=True)


class Cattle(CattleBase, table=True):
    __tablename__ = "ganado"

    id_ganado: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class CattleCreate(CattleBase):
    pass


class CattleUpdate(SQLModel):
    """Schema for updating cattle - all fields optional"""

    nombre: str | None = Field(default=None, min_length=1, max_length=200)
    numero_identificacion: str | None = Field(default=None, max_length=100)
    precio_compra: float | None = Field(default=None, ge=0)
    nota: str | None = None
    id_finca: int | None = None


class CattleResponse(CattleBase):
    id_ganado: int
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
