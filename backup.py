"""
Backup, restore and CSV import of the student collection.

    python backup.py backup
    python backup.py restore                      # list available backups
    python backup.py restore --file NAME [--dry-run] [--force]
    python backup.py import --file roster.csv [--dry-run]

Files are written with ``bson.json_util`` so ObjectIds and dates survive
the round trip. Restores and imports upsert by ``identificacion``.
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from bson import json_util

import database
from csv_import import import_rows, missing_headers, parse_csv
from normalize import normalize_grade, normalize_group

logger = logging.getLogger(__name__)

STUDENTS = "estudiante"
BACKUP_PREFIX = "backup-estudiantes-"
BACKUP_DIR = Path(os.getenv("BACKUP_DIR", "data/backups"))
DEFAULT_CSV = "data/plantilla-estudiantes.csv"


def list_backups(backup_dir: Path = BACKUP_DIR) -> List[str]:
    """Backup file names, newest first."""
    if not backup_dir.exists():
        return []
    return sorted((p.name for p in backup_dir.glob(f"{BACKUP_PREFIX}*.json")), reverse=True)


def create_backup(db, backup_dir: Path = BACKUP_DIR) -> Optional[Path]:
    students = list(db[STUDENTS].find({}))
    if not students:
        logger.info("No students to back up")
        return None

    now = datetime.now(timezone.utc)
    backup_dir.mkdir(parents=True, exist_ok=True)
    path = backup_dir / f"{BACKUP_PREFIX}{now.strftime('%Y-%m-%dT%H-%M-%S-%fZ')}.json"
    payload = {
        "fechaCreacion": now.isoformat(),
        "totalEstudiantes": len(students),
        "estudiantes": students,
    }
    path.write_text(json_util.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Backup written to %s (%s students)", path, len(students))
    return path


def resolve_backup_path(name: str, backup_dir: Path = BACKUP_DIR) -> Path:
    path = Path(name)
    return path if path.is_absolute() else backup_dir / name


def load_backup(path: Path) -> List[Dict[str, Any]]:
    data = json_util.loads(path.read_text(encoding="utf-8"))
    # older backups are a bare list of students
    if isinstance(data, dict):
        return data.get("estudiantes", [])
    return data


def restore_backup(db, path: Path, dry_run: bool = False, force: bool = False) -> Dict[str, Any]:
    """
    Upsert every student in the backup file.

    Refuses to write into a non-empty collection unless ``force`` is set;
    a dry run only counts what would happen.
    """
    students = load_backup(path)
    existing_count = db[STUDENTS].count_documents({})
    if existing_count > 0 and not force and not dry_run:
        logger.warning("Collection already has %s students, use --force or --dry-run", existing_count)
        return {"restaurado": False, "creados": 0, "actualizados": 0, "errores": 0}

    created = updated = failed = 0
    for student in students:
        data = {k: v for k, v in student.items() if k not in ("_id", "__v")}
        if "grado" in data:
            data["grado"] = normalize_grade(data["grado"])
        if "grupo" in data:
            data["grupo"] = normalize_group(data["grupo"])
        identificacion = data.get("identificacion")
        if not identificacion:
            logger.error("Backup entry without identificacion skipped")
            failed += 1
            continue
        existing = db[STUDENTS].find_one({"identificacion": identificacion}, {"_id": 1})
        if existing:
            if not dry_run:
                db[STUDENTS].replace_one({"_id": existing["_id"]}, data)
            updated += 1
        else:
            if not dry_run:
                db[STUDENTS].insert_one(data)
            created += 1

    logger.info("Restore %s: %s created, %s updated, %s errors",
                "simulated" if dry_run else "done", created, updated, failed)
    return {"restaurado": not dry_run, "creados": created, "actualizados": updated, "errores": failed}


def import_csv_file(db, path: Path, dry_run: bool = False) -> Dict[str, Any]:
    """Import a roster CSV file; raises ValueError when the file has no rows or lacks required columns."""
    headers, rows = parse_csv(path.read_text(encoding="utf-8"))
    if not rows:
        raise ValueError("El CSV no contiene filas para importar")
    missing = missing_headers(headers)
    if missing:
        raise ValueError(f"Faltan columnas requeridas: {', '.join(missing)}")
    result = import_rows(db[STUDENTS], rows, dry_run=dry_run)
    logger.info("Import of %s %s: %s created, %s updated, %s errors", path,
                "simulated" if dry_run else "done", result["creados"], result["actualizados"], result["errores"])
    return result


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    parser = argparse.ArgumentParser(description="Backup, restore and CSV import of the student collection")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("backup", help="write a new backup file")
    restore = sub.add_parser("restore", help="restore a backup file")
    restore.add_argument("--file", help="backup file name (inside BACKUP_DIR) or absolute path")
    restore.add_argument("--dry-run", action="store_true", help="only report what would change")
    restore.add_argument("--force", action="store_true", help="write even if students already exist")
    importer = sub.add_parser("import", help="import students from a CSV roster")
    importer.add_argument("--file", default=DEFAULT_CSV, help=f"CSV file (default {DEFAULT_CSV})")
    importer.add_argument("--dry-run", action="store_true", help="only validate and count the rows")
    args = parser.parse_args(argv)

    if database.db is None:
        logger.error("DATABASE_URL/DATABASE_NAME are not set")
        return 1

    if args.command == "backup":
        create_backup(database.db)
        for name in list_backups()[:5]:
            print(name)
        return 0

    if args.command == "import":
        path = Path(args.file)
        if not path.exists():
            logger.error("CSV file not found: %s", path)
            return 1
        try:
            result = import_csv_file(database.db, path, dry_run=args.dry_run)
        except ValueError as e:
            logger.error("%s", e)
            return 1
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return 0

    if not args.file:
        backups = list_backups()
        if not backups:
            print("No hay backups disponibles")
        for name in backups:
            print(name)
        return 0

    path = resolve_backup_path(args.file)
    if not path.exists():
        logger.error("Backup file not found: %s", path)
        return 1
    result = restore_backup(database.db, path, dry_run=args.dry_run, force=args.force)
    print(json.dumps(result, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
