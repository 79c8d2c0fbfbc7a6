"""
Educational knowledge repository: provinces and the national curriculum.

Seeded once from the bundled JSON fixtures, read-only afterwards.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from database import Database, Transaction

logger = logging.getLogger(__name__)


def _load(fixtures_dir: Path, name: str):
    with open(fixtures_dir / name, encoding="utf-8") as f:
        return json.load(f)


def _seed_wilayas(tx: Transaction, fixtures_dir: Path) -> None:
    data = _load(fixtures_dir, "wilayas.json")
    for w in data:
        tx.run(
            "INSERT INTO wilayas (id, code, name_ar, name_en, name_fr) VALUES (:id, :code, :name_ar, :name_en, :name_fr)",
            {"id": w["id"], "code": w["code"], "name_ar": w["name_ar"], "name_en": w.get("name_en"),
             "name_fr": w.get("name_fr")},
        )
    logger.info("Seeded %d wilayas", len(data))


def _seed_levels_and_years(tx: Transaction, fixtures_dir: Path) -> None:
    data = _load(fixtures_dir, "levels.json")
    for level in data["levels"]:
        tx.run(
            "INSERT INTO education_levels (id, name_ar, name_en) VALUES (:id, :name_ar, :name_en)",
            {"id": level["id"], "name_ar": level["name_ar"], "name_en": level.get("name_en")},
        )
    for year in data["years"]:
        tx.run(
            """
            INSERT INTO education_years (id, level_id, name_ar, name_en, ordering)
            VALUES (:id, :level_id, :name_ar, :name_en, :ordering)
            """,
            {"id": year["id"], "level_id": year["level_id"], "name_ar": year["name_ar"],
             "name_en": year.get("name_en"), "ordering": year.get("ordering")},
        )
    for stream in data["streams"]:
        tx.run(
            "INSERT INTO streams (id, name_ar, name_en) VALUES (:id, :name_ar, :name_en)",
            {"id": stream["id"], "name_ar": stream["name_ar"], "name_en": stream.get("name_en")},
        )
    logger.info("Seeded levels, years and streams")


def _seed_subjects(tx: Transaction, fixtures_dir: Path) -> None:
    data = _load(fixtures_dir, "subjects.json")
    for s in data:
        tx.run(
            "INSERT INTO subjects (id, name_ar, name_en, name_fr, category) VALUES (:id, :name_ar, :name_en, :name_fr, :category)",
            {"id": s["id"], "name_ar": s["name_ar"], "name_en": s.get("name_en"), "name_fr": s.get("name_fr"),
             "category": s.get("category")},
        )
    logger.info("Seeded %d subjects", len(data))


def _seed_curriculum(tx: Transaction, fixtures_dir: Path) -> None:
    data = _load(fixtures_dir, "curriculum.json")
    for c in data:
        stream_id = c.get("stream_id")
        tx.run(
            """
            INSERT INTO curriculum (id, year_id, stream_id, subject_id, coefficient, weekly_hours)
            VALUES (:id, :year_id, :stream_id, :subject_id, :coefficient, :weekly_hours)
            """,
            {
                "id": f"{c['year_id']}_{c['subject_id']}_{stream_id or 'COMMON'}",
                "year_id": c["year_id"],
                "stream_id": stream_id,
                "subject_id": c["subject_id"],
                "coefficient": c.get("coefficient", 1),
                "weekly_hours": c.get("weekly_hours", 1),
            },
        )
    logger.info("Seeded %d curriculum entries", len(data))


def initialize_repository(db: Database, fixtures_dir: Path) -> bool:
    """Seed the reference tables when they are empty. Returns True when seeding ran."""
    count = db.query_one("SELECT COUNT(*) AS count FROM wilayas")["count"]
    if count:
        return False
    if not fixtures_dir.is_dir():
        logger.warning("Seed directory not found: %s", fixtures_dir)
        return False

    logger.info("Seeding initial repository data...")
    with db.transaction() as tx:
        _seed_wilayas(tx, fixtures_dir)
        _seed_levels_and_years(tx, fixtures_dir)
        _seed_subjects(tx, fixtures_dir)
        _seed_curriculum(tx, fixtures_dir)
    logger.info("Seeding completed successfully")
    return True


# ========== Readers ==========
def get_wilayas(db: Database) -> List[dict]:
    return db.query_all("SELECT * FROM wilayas ORDER BY id ASC")


def get_levels(db: Database) -> List[dict]:
    return db.query_all("SELECT * FROM education_levels ORDER BY rowid ASC")


def get_years(db: Database, level_id: Optional[str] = None) -> List[dict]:
    if level_id:
        return db.query_all(
            "SELECT * FROM education_years WHERE level_id = :level_id ORDER BY ordering ASC",
            {"level_id": level_id},
        )
    return db.query_all("SELECT * FROM education_years ORDER BY ordering ASC")


def get_streams(db: Database) -> List[dict]:
    return db.query_all("SELECT * FROM streams ORDER BY rowid ASC")


def get_subjects(db: Database) -> List[dict]:
    return db.query_all("SELECT * FROM subjects ORDER BY rowid ASC")


def get_curriculum(db: Database, year_id: str, stream_id: Optional[str] = None) -> List[dict]:
    sql = """
        SELECT c.*, s.name_ar AS subject_name, s.category
        FROM curriculum c
        JOIN subjects s ON c.subject_id = s.id
        WHERE c.year_id = :year_id
    """
    params = {"year_id": year_id}

    if stream_id:
        sql += " AND c.stream_id = :stream_id"
        params["stream_id"] = stream_id
    else:
        sql += " AND c.stream_id IS NULL"

    return db.query_all(sql + " ORDER BY c.coefficient DESC, c.subject_id ASC", params)


def get_competencies(db: Database, subject_id: str, year_id: str) -> List[dict]:
    return db.query_all(
        "SELECT * FROM competencies WHERE subject_id = :subject_id AND year_id = :year_id ORDER BY domain ASC",
        {"subject_id": subject_id, "year_id": year_id},
    )
