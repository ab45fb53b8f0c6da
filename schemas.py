"""
Database Schemas for the School Attendance and Conduct System

Each stored Pydantic model below maps to a MongoDB collection (class name lowercased).
Payload models describe request bodies; stored dates travel as ISO strings and
are validated by the write path so invalid values come back as 400 errors.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


# Stored documents
class Usuario(BaseModel):
    username: str
    password_hash: str
    nombre: str
    rol: str = Field("profesor", description="admin|profesor")
    gradoAsignado: str = ""
    grupoAsignado: str = ""


class Acudiente(BaseModel):
    nombre: str = ""
    telefono: str = ""
    email: str = ""
    ocupacion: str = ""


class Tutor(BaseModel):
    nombre: str = ""
    telefono: str = ""
    email: str = ""
    parentesco: str = ""


class RegistroAsistencia(BaseModel):
    fecha: datetime
    tipo: str = Field(..., description="presente|falta|retardo|salida")
    hora: str = ""
    observacion: str = ""
    fotoUrl: Optional[str] = None
    registradoPor: str = ""


class ReporteConvivencia(BaseModel):
    fecha: datetime
    categoria: str = Field("convivencia", description="convivencia|disciplinario|acoso|agresion|otro")
    gravedad: str = Field("tipo2", description="tipo1|tipo2|tipo3 (legacy: baja|media|alta)")
    estado: str = Field("abierto", description="abierto|en seguimiento|cerrado")
    descripcion: str
    acciones: str = ""
    registradoPor: str = ""


class Estudiante(BaseModel):
    nombre: str = Field(..., min_length=1)
    identificacion: str = Field(..., min_length=1)
    grado: str = Field(..., min_length=1)
    grupo: str = Field(..., min_length=1)
    fechaNacimiento: Optional[datetime] = None
    direccion: str = ""
    telefono: str = ""
    email: str = ""
    padre: Acudiente = Field(default_factory=Acudiente)
    madre: Acudiente = Field(default_factory=Acudiente)
    tutor: Tutor = Field(default_factory=Tutor)
    historial: List[RegistroAsistencia] = Field(default_factory=list)
    reportesConvivencia: List[ReporteConvivencia] = Field(default_factory=list)


class EstudianteUpdate(BaseModel):
    nombre: Optional[str] = None
    identificacion: Optional[str] = None
    grado: Optional[str] = None
    grupo: Optional[str] = None
    fechaNacimiento: Optional[datetime] = None
    direccion: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
    padre: Optional[Acudiente] = None
    madre: Optional[Acudiente] = None
    tutor: Optional[Tutor] = None


# Request payloads
class LoginPayload(BaseModel):
    username: str
    password: str


class UsuarioPayload(BaseModel):
    username: str
    password: str
    nombre: str
    rol: str = "profesor"
    gradoAsignado: str = ""
    grupoAsignado: str = ""


class AsistenciaPayload(BaseModel):
    estudianteId: str
    fecha: str
    tipo: str
    hora: str = ""
    observacion: str = ""
    fotoUrl: Optional[str] = None


class AsistenciaUpdate(BaseModel):
    fecha: Optional[str] = None
    tipo: Optional[str] = None
    hora: Optional[str] = None
    observacion: Optional[str] = None
    fotoUrl: Optional[str] = None


class ReportePayload(BaseModel):
    estudianteId: str
    fecha: Optional[str] = None
    categoria: str = "convivencia"
    gravedad: str = "tipo2"
    estado: str = "abierto"
    descripcion: str
    acciones: str = ""


class ReporteUpdate(BaseModel):
    fecha: Optional[str] = None
    categoria: Optional[str] = None
    gravedad: Optional[str] = None
    estado: Optional[str] = None
    descripcion: Optional[str] = None
    acciones: Optional[str] = None


class CsvImportPayload(BaseModel):
    csvContent: str
    dryRun: bool = False
