import csv
import io
import logging
import os
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from jose import jwt, JWTError
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

import database
from database import create_document, get_documents, ensure_indexes
from csv_import import parse_csv, missing_headers, import_rows
from duplicates import is_duplicate_attendance, is_duplicate_conduct
from errors import AppError, ConflictError, ForbiddenError, NotFoundError, ValidationError, about_student
from normalize import normalize_grade, normalize_group, utcnow
from records import build_attendance, build_report, find_record, add_record, replace_record, remove_record
from reports import student_tallies, group_rollups, global_stats
from risk import build_conduct_report
from schemas import (
    Usuario, Estudiante, EstudianteUpdate, RegistroAsistencia, ReporteConvivencia,
    LoginPayload, UsuarioPayload, AsistenciaPayload, AsistenciaUpdate,
    ReportePayload, ReporteUpdate, CsvImportPayload,
)
from scope import ADMIN_ROLE, can_access, matches_scope, scope_filter_or_reject
from summary import summarize, sort_by_date_desc

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# -------------------- Auth & Security -------------------- #
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 8))
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ROLES = (ADMIN_ROLE, "profesor")
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def collection_name(model_cls) -> str:
    return model_cls.__name__.lower()


USERS = collection_name(Usuario)
STUDENTS = collection_name(Estudiante)

DUPLICATE_STUDENT = "Ya existe un estudiante con esa identificación"
STUDENT_LIST_FIELDS = {"nombre": 1, "grado": 1, "grupo": 1, "identificacion": 1}
PROFILE_FIELDS = (
    "nombre", "grado", "grupo", "identificacion", "fechaNacimiento",
    "direccion", "telefono", "email", "padre", "madre", "tutor",
)


def serialize_value(v: Any) -> Any:
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, dict):
        return serialize_doc(v)
    if isinstance(v, list):
        return [serialize_value(x) for x in v]
    if hasattr(v, "isoformat"):
        return v.isoformat()
    return v


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password_hash", None)
    return {k: serialize_value(v) for k, v in d.items()}


def serialize_list(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in docs]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def user_claims(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "sub": user.get("username"),
        "id": str(user.get("_id", "")),
        "nombre": user.get("nombre", ""),
        "rol": user.get("rol", "profesor"),
        "gradoAsignado": user.get("gradoAsignado", ""),
        "grupoAsignado": user.get("grupoAsignado", ""),
    }


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(request: Request) -> Optional[Dict[str, Any]]:
    """Return decoded JWT claims (the caller context) if present, else None."""
    auth = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1]
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def require_roles(*roles: str):
    async def _dep(user: Optional[Dict[str, Any]] = Depends(get_current_user)):
        if user is None:
            raise HTTPException(status_code=401, detail="Token no proporcionado o invalido")
        if roles and user.get("rol") not in roles:
            raise HTTPException(status_code=403, detail="Solo administradores pueden realizar esta accion")
        return user
    return _dep


current_user = require_roles()
admin_user = require_roles(ADMIN_ROLE)


def get_db():
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return database.db


def bootstrap_admin() -> None:
    if database.db[USERS].find_one({"username": ADMIN_USERNAME}):
        return
    admin = Usuario(
        username=ADMIN_USERNAME,
        password_hash=hash_password(ADMIN_PASSWORD),
        nombre="Administrador",
        rol=ADMIN_ROLE,
    )
    create_document(USERS, admin)
    logger.info("Default admin user created: %s", ADMIN_USERNAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            ensure_indexes()
            bootstrap_admin()
        except Exception as e:
            logger.error("Startup database initialization failed: %s", e)
    yield


app = FastAPI(title="School Attendance & Conduct API", version="2.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL") or "*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# -------------------- Logging & Errors -------------------- #
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed)
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    level = logging.WARNING if isinstance(exc, ForbiddenError) else logging.INFO
    estudiante_id = exc.estudiante_id or request.path_params.get("estudiante_id") or "-"
    logger.log(level, "%s %s rejected (%s) for student %s: %s",
               request.method, request.url.path, exc.status_code, estudiante_id, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# -------------------- Student helpers -------------------- #
def load_student(db, estudiante_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    if not ObjectId.is_valid(estudiante_id):
        raise NotFoundError("Estudiante no encontrado", estudiante_id)
    student = db[STUDENTS].find_one({"_id": ObjectId(estudiante_id)})
    if not student:
        raise NotFoundError("Estudiante no encontrado", estudiante_id)
    if not can_access(user, student):
        raise ForbiddenError("No tiene acceso a este estudiante", estudiante_id)
    return student


def save_collection(db, student: Dict[str, Any], field: str, items: List[dict]) -> None:
    """Write back one of the student's collections if nobody changed the student in between."""
    res = db[STUDENTS].update_one(
        {"_id": student["_id"], "version": student.get("version")},
        {"$set": {field: items, "updatedAt": utcnow()}, "$inc": {"version": 1}},
    )
    if res.matched_count == 0:
        raise ConflictError("El estudiante fue modificado por otra operacion, intente de nuevo", str(student["_id"]))


def student_criteria(user: Dict[str, Any], grado: Optional[str] = None, grupo: Optional[str] = None) -> Optional[Dict[str, str]]:
    """Scope narrowed by the requested grado/grupo; None when they fall outside the scope."""
    criteria: Dict[str, str] = dict(scope_filter_or_reject(user))
    for key, value in (("grado", normalize_grade(grado)), ("grupo", normalize_group(grupo))):
        if not value:
            continue
        if criteria.get(key, value) != value:
            return None
        criteria[key] = value
    return criteria


def scoped_students(
    user: Dict[str, Any],
    grado: Optional[str] = None,
    grupo: Optional[str] = None,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort=None,
    projection: Optional[Dict[str, int]] = None,
) -> List[Dict[str, Any]]:
    """
    Students the caller may see, optionally narrowed to a grado/grupo.

    grado/grupo are compared after normalization so students stored with
    older spellings ("8°", "a") are still found.
    """
    get_db()
    criteria = student_criteria(user, grado, grupo)
    if criteria is None:
        return []
    docs = get_documents(
        STUDENTS,
        filter_dict=filter_dict or {},
        sort=sort or [("grado", 1), ("grupo", 1), ("nombre", 1)],
        projection=projection,
    )
    return [doc for doc in docs if matches_scope(doc, criteria)]


# -------------------- Meta endpoints -------------------- #

@app.get("/")
def read_root():
    return {"message": "School Attendance & Conduct Backend is running"}


@app.get("/schema")
def get_schema():
    models = [Usuario, Estudiante, RegistroAsistencia, ReporteConvivencia]
    return {m.__name__: m.model_json_schema() for m in models}


@app.get("/health")
def health():
    response = {
        "backend": "running",
        "database": "not available",
        "database_name": None,
        "collections": [],
    }
    if database.db is None:
        return response
    try:
        response["database_name"] = database.db.name
        response["collections"] = database.db.list_collection_names()[:50]
        response["database"] = "connected"
    except Exception as e:
        logger.error("Health check failed: %s", e)
        response["database"] = f"error: {str(e)[:80]}"
    return response


# -------------------- Auth endpoints -------------------- #

@app.post("/api/login")
def login(payload: LoginPayload):
    db = get_db()
    if not payload.username or not payload.password:
        raise HTTPException(status_code=400, detail="Usuario y contraseña requeridos")
    user = db[USERS].find_one({"username": payload.username})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.info("Failed login for %s", payload.username)
        raise HTTPException(status_code=401, detail="Usuario o contraseña incorrectos")
    claims = user_claims(user)
    token = create_access_token(claims)
    usuario = {k: v for k, v in claims.items() if k != "sub"}
    usuario["username"] = claims["sub"]
    return {"token": token, "usuario": usuario}


@app.post("/api/usuarios", status_code=201)
def register_user(payload: UsuarioPayload, user=Depends(admin_user)):
    db = get_db()
    if payload.rol not in ROLES:
        raise ValidationError("Rol invalido")
    if db[USERS].find_one({"username": payload.username}):
        raise HTTPException(status_code=400, detail="El usuario ya existe")
    doc = Usuario(
        username=payload.username,
        password_hash=hash_password(payload.password),
        nombre=payload.nombre,
        rol=payload.rol,
        gradoAsignado=normalize_grade(payload.gradoAsignado),
        grupoAsignado=normalize_group(payload.grupoAsignado),
    )
    try:
        uid = create_document(USERS, doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="El usuario ya existe")
    logger.info("User %s created by %s", payload.username, user.get("sub"))
    return {"message": "Usuario creado exitosamente", "id": uid}


# -------------------- Student endpoints -------------------- #

@app.get("/api/estudiantes")
def list_students(grado: Optional[str] = None, grupo: Optional[str] = None, busqueda: Optional[str] = None, user=Depends(current_user)):
    filt: Dict[str, Any] = {}
    if busqueda:
        pattern = {"$regex": re.escape(busqueda), "$options": "i"}
        filt["$or"] = [{"nombre": pattern}, {"identificacion": pattern}]
    docs = scoped_students(user, grado, grupo, filter_dict=filt, sort=[("nombre", 1)], projection=STUDENT_LIST_FIELDS)
    return serialize_list(docs)


@app.post("/api/estudiantes/importar-csv")
def import_students_csv(payload: CsvImportPayload, user=Depends(admin_user)):
    db = get_db()
    headers, rows = parse_csv(payload.csvContent)
    if not rows:
        raise ValidationError("El CSV no contiene filas para importar")
    missing = missing_headers(headers)
    if missing:
        raise ValidationError(f"Faltan columnas requeridas: {', '.join(missing)}")

    result = import_rows(db[STUDENTS], rows, dry_run=payload.dryRun)
    logger.info("CSV import (dryRun=%s): %s created, %s updated, %s failed",
                payload.dryRun, result["creados"], result["actualizados"], result["errores"])
    return {
        "message": "Validacion completada (dry run)" if payload.dryRun else "Importacion completada",
        "dryRun": payload.dryRun,
        **result,
        "detalleErrores": result["detalleErrores"][:100],
    }


@app.get("/api/estudiantes/{estudiante_id}")
def get_student(estudiante_id: str, user=Depends(current_user)):
    db = get_db()
    return serialize_doc(load_student(db, estudiante_id, user))


@app.post("/api/estudiantes", status_code=201)
def add_student(payload: Estudiante, user=Depends(current_user)):
    db = get_db()
    data = payload.model_dump(exclude={"historial", "reportesConvivencia"})
    data["identificacion"] = data["identificacion"].strip()
    data["grado"] = normalize_grade(data["grado"])
    data["grupo"] = normalize_group(data["grupo"])
    if not data["grado"] or not data["grupo"]:
        raise ValidationError("grado y grupo son obligatorios")
    if not can_access(user, data):
        raise ForbiddenError("No puede crear estudiantes fuera de su grado y grupo")
    if db[STUDENTS].find_one({"identificacion": data["identificacion"]}):
        raise HTTPException(status_code=400, detail=DUPLICATE_STUDENT)
    data.update(historial=[], reportesConvivencia=[], version=0)
    try:
        sid = create_document(STUDENTS, data)
    except DuplicateKeyError:
        # another request created the same identificacion after the check above
        raise HTTPException(status_code=400, detail=DUPLICATE_STUDENT)
    logger.info("Student %s created by %s", sid, user.get("sub"))
    return {"message": "Estudiante creado exitosamente", "estudiante": serialize_doc(db[STUDENTS].find_one({"_id": ObjectId(sid)}))}


@app.put("/api/estudiantes/{estudiante_id}")
def update_student(estudiante_id: str, payload: EstudianteUpdate, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    changes = payload.model_dump(exclude_unset=True)
    if "grado" in changes:
        changes["grado"] = normalize_grade(changes["grado"])
    if "grupo" in changes:
        changes["grupo"] = normalize_group(changes["grupo"])
    if "identificacion" in changes:
        changes["identificacion"] = (changes["identificacion"] or "").strip()
    for key in ("nombre", "identificacion", "grado", "grupo"):
        if key in changes and not changes[key]:
            raise ValidationError(f"{key} es obligatorio")
    if not can_access(user, {**student, **changes}):
        raise ForbiddenError("No puede mover estudiantes fuera de su grado y grupo")
    if changes.get("identificacion") and changes["identificacion"] != student.get("identificacion"):
        if db[STUDENTS].find_one({"identificacion": changes["identificacion"]}):
            raise HTTPException(status_code=400, detail=DUPLICATE_STUDENT)
    if changes:
        try:
            db[STUDENTS].update_one({"_id": student["_id"]}, {"$set": {**changes, "updatedAt": utcnow()}})
        except DuplicateKeyError:
            raise HTTPException(status_code=400, detail=DUPLICATE_STUDENT)
    updated = db[STUDENTS].find_one({"_id": student["_id"]})
    return {"message": "Estudiante actualizado", "estudiante": serialize_doc(updated)}


@app.delete("/api/estudiantes/{estudiante_id}")
def delete_student(estudiante_id: str, user=Depends(admin_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    db[STUDENTS].delete_one({"_id": student["_id"]})
    logger.info("Student %s deleted by %s", estudiante_id, user.get("sub"))
    return {"message": "Estudiante eliminado"}


# -------------------- Attendance endpoints -------------------- #

@app.post("/api/asistencia", status_code=201)
def add_attendance(payload: AsistenciaPayload, user=Depends(current_user)):
    db = get_db()
    with about_student(payload.estudianteId):
        record = build_attendance(payload.model_dump(), user.get("nombre", ""))
        student = load_student(db, payload.estudianteId, user)
        historial = add_record(student.get("historial"), record, is_duplicate_attendance)
        save_collection(db, student, "historial", historial)
    return {"message": "Asistencia registrada", "registro": serialize_doc(record)}


@app.put("/api/asistencia/{estudiante_id}/{registro_id}")
def update_attendance(estudiante_id: str, registro_id: str, payload: AsistenciaUpdate, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    current = find_record(student.get("historial"), registro_id)
    if current is None:
        raise NotFoundError("Registro de asistencia no encontrado")
    merged = {**current, **payload.model_dump(exclude_unset=True)}
    record = build_attendance(merged, current.get("registradoPor", ""), oid=current["_id"])
    historial = replace_record(student.get("historial"), registro_id, record, is_duplicate_attendance)
    save_collection(db, student, "historial", historial)
    return {"message": "Asistencia actualizada", "registro": serialize_doc(record)}


@app.delete("/api/asistencia/{estudiante_id}/{registro_id}")
def delete_attendance(estudiante_id: str, registro_id: str, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    historial = remove_record(student.get("historial"), registro_id)
    save_collection(db, student, "historial", historial)
    return {"message": "Asistencia eliminada"}


# -------------------- Conduct endpoints -------------------- #

@app.post("/api/convivencia/reportes", status_code=201)
def add_conduct_report(payload: ReportePayload, user=Depends(current_user)):
    db = get_db()
    with about_student(payload.estudianteId):
        report = build_report(payload.model_dump(), user.get("nombre", ""))
        student = load_student(db, payload.estudianteId, user)
        reportes = add_record(student.get("reportesConvivencia"), report, is_duplicate_conduct)
        save_collection(db, student, "reportesConvivencia", reportes)
    return {"message": "Reporte de convivencia registrado", "reporte": serialize_doc(report)}


@app.get("/api/convivencia/reportes/{estudiante_id}")
def list_conduct_reports(estudiante_id: str, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    return {
        "estudiante": {
            "id": str(student["_id"]),
            "nombre": student.get("nombre"),
            "grado": student.get("grado"),
            "grupo": student.get("grupo"),
            "identificacion": student.get("identificacion"),
        },
        "reportesConvivencia": serialize_value(sort_by_date_desc(student.get("reportesConvivencia"))),
    }


@app.put("/api/convivencia/reportes/{estudiante_id}/{reporte_id}")
def update_conduct_report(estudiante_id: str, reporte_id: str, payload: ReporteUpdate, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    current = find_record(student.get("reportesConvivencia"), reporte_id)
    if current is None:
        raise NotFoundError("Reporte de convivencia no encontrado")
    merged = {**current, **payload.model_dump(exclude_unset=True)}
    report = build_report(merged, current.get("registradoPor", ""), oid=current["_id"])
    reportes = replace_record(student.get("reportesConvivencia"), reporte_id, report, is_duplicate_conduct)
    save_collection(db, student, "reportesConvivencia", reportes)
    return {"message": "Reporte de convivencia actualizado", "reporte": serialize_doc(report)}


@app.delete("/api/convivencia/reportes/{estudiante_id}/{reporte_id}")
def delete_conduct_report(estudiante_id: str, reporte_id: str, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    reportes = remove_record(student.get("reportesConvivencia"), reporte_id)
    save_collection(db, student, "reportesConvivencia", reportes)
    return {"message": "Reporte de convivencia eliminado"}


# -------------------- Student profile -------------------- #

@app.get("/api/perfil/{estudiante_id}")
def student_profile(estudiante_id: str, user=Depends(current_user)):
    db = get_db()
    student = load_student(db, estudiante_id, user)
    historial = sort_by_date_desc(student.get("historial"))
    reportes = sort_by_date_desc(student.get("reportesConvivencia"))
    resumen = summarize(historial)
    reporte = build_conduct_report(historial, resumen, reportes)
    estudiante = {"id": str(student["_id"]), **{k: student.get(k) for k in PROFILE_FIELDS}}
    return {
        "estudiante": serialize_value(estudiante),
        "historial": serialize_value(historial),
        "reportesConvivencia": serialize_value(reportes),
        "resumenAsistencia": serialize_value(resumen),
        "reporteConvivencia": serialize_value(reporte),
    }


# -------------------- Attendance Reports & CSV -------------------- #

@app.get("/api/reportes/general")
def general_report(
    fechaInicio: Optional[str] = None,
    fechaFin: Optional[str] = None,
    grado: Optional[str] = None,
    grupo: Optional[str] = None,
    format: str = "json",
    user=Depends(current_user),
):
    rows = student_tallies(scoped_students(user, grado, grupo), fechaInicio, fechaFin)
    if format == "csv":
        columns = ["id", "nombre", "grado", "grupo", "presentes", "faltas", "retardos", "salidas", "total"]

        def gen():
            for values in [columns] + [[row[c] for c in columns] for row in rows]:
                buf = io.StringIO()
                csv.writer(buf, lineterminator="\n").writerow(values)
                yield buf.getvalue()
        return StreamingResponse(gen(), media_type="text/csv")
    return rows


@app.get("/api/reportes/por-grupo")
def group_report(fechaInicio: Optional[str] = None, fechaFin: Optional[str] = None, user=Depends(current_user)):
    return group_rollups(scoped_students(user), fechaInicio, fechaFin)


@app.get("/api/reportes/estadisticas")
def statistics_report(fechaInicio: Optional[str] = None, fechaFin: Optional[str] = None, user=Depends(current_user)):
    return global_stats(scoped_students(user), fechaInicio, fechaFin)


# -------------------- Run -------------------- #

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
