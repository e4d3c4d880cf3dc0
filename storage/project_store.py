import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone

from pydantic import ValidationError

from pipeline.errors import PersistFailure
from storage.records import (
    SCHEMA_VERSION,
    ChunkingMetadata,
    ExtractedFrame,
    ProjectRecord,
    VideoMetadata,
)

logger = logging.getLogger(__name__)


class ProjectStore:
    """
    SQLite-backed project records. JSON columns are validated against
    storage.records on every read and write.
    """

    def __init__(self, db_path: str = "projects.db"):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise PersistFailure(f"Cannot open project database: {exc}") from exc

    # ---------- DB INIT ----------
    def init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    schema_version INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    source_video_path TEXT,
                    video_metadata TEXT NOT NULL,
                    extracted_frames TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to initialize project database: {exc}") from exc
        finally:
            conn.close()

    # ---------- CREATE / READ ----------
    def create_project(
        self,
        title: str,
        source_video_path: str | None = None,
        video_metadata: VideoMetadata | None = None,
        project_id: str | None = None,
    ) -> ProjectRecord:
        record = self._validate(
            {
                "schema_version": SCHEMA_VERSION,
                "id": project_id or uuid.uuid4().hex,
                "title": title,
                "source_video_path": source_video_path,
                "video_metadata": (video_metadata or VideoMetadata()).model_dump(mode="json"),
                "extracted_frames": [],
            }
        )

        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO projects (
                    id, schema_version, title, source_video_path,
                    video_metadata, extracted_frames, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.schema_version,
                    record.title,
                    record.source_video_path,
                    json.dumps(record.video_metadata.model_dump(mode="json")),
                    json.dumps([]),
                    _utc_now_iso(),
                ),
            )
            conn.commit()
        except sqlite3.IntegrityError as exc:
            raise PersistFailure(f"Project already exists: {record.id}") from exc
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to create project: {exc}") from exc
        finally:
            conn.close()

        return record

    def get_project(self, project_id: str) -> ProjectRecord | None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, schema_version, title, source_video_path,
                       video_metadata, extracted_frames
                FROM projects
                WHERE id = ?
                LIMIT 1
                """,
                (project_id,),
            )
            row = cur.fetchone()
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to load project {project_id}: {exc}") from exc
        finally:
            conn.close()

        if row is None:
            return None

        try:
            video_metadata = json.loads(row[4])
            extracted_frames = json.loads(row[5])
        except (TypeError, ValueError) as exc:
            raise PersistFailure(f"Corrupt JSON in project {project_id}") from exc

        return self._validate(
            {
                "schema_version": int(row[1]),
                "id": str(row[0]),
                "title": str(row[2]),
                "source_video_path": row[3],
                "video_metadata": video_metadata,
                "extracted_frames": extracted_frames,
            }
        )

    def require_project(self, project_id: str) -> ProjectRecord:
        record = self.get_project(project_id)
        if record is None:
            raise PersistFailure(f"Project not found: {project_id}")
        return record

    # ---------- WRITES (full replace) ----------
    def save_extracted_frames(self, project_id: str, frames: list[ExtractedFrame]) -> ProjectRecord:
        current = self.require_project(project_id)
        updated = self._validate(
            {
                **current.model_dump(mode="json"),
                "extracted_frames": [f.model_dump(mode="json") for f in frames],
            }
        )

        self._write_column(
            project_id,
            "extracted_frames",
            json.dumps([f.model_dump(mode="json") for f in updated.extracted_frames]),
        )
        logger.info("Saved %d frames to project %s", len(updated.extracted_frames), project_id)
        return updated

    def save_chunking(self, project_id: str, chunking: ChunkingMetadata) -> ProjectRecord:
        current = self.require_project(project_id)
        metadata = current.video_metadata.model_dump(mode="json")
        metadata["chunking"] = chunking.model_dump(mode="json")

        updated = self._validate({**current.model_dump(mode="json"), "video_metadata": metadata})
        self._write_column(
            project_id,
            "video_metadata",
            json.dumps(updated.video_metadata.model_dump(mode="json")),
        )
        return updated

    def _write_column(self, project_id: str, column: str, value: str) -> None:
        if column not in ("extracted_frames", "video_metadata"):
            raise ValueError(f"Unsupported column: {column}")

        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"UPDATE projects SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, _utc_now_iso(), project_id),
            )
            if cur.rowcount != 1:
                raise PersistFailure(f"Project not found: {project_id}")
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to update {column} for {project_id}: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _validate(data: dict) -> ProjectRecord:
        try:
            return ProjectRecord.model_validate(data)
        except ValidationError as exc:
            raise PersistFailure(
                "Project record failed validation",
                details={"errors": exc.error_count(), "project_id": data.get("id")},
            ) from exc


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
