"""SQLite persistence for the cross-language entity index."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .config import INDEX_DIR, ensure_base_dirs
from .entities import CrossLanguageEntity, CrossReference

logger = logging.getLogger(__name__)


def index_dir_for(project_root: Path) -> Path:
    """Per-project index directory under ``INDEX_DIR``."""
    ensure_base_dirs()
    return INDEX_DIR / (project_root.resolve().name or "root")


class IndexStore:
    """Entity and cross-reference tables for one project.

    Writes are upserts keyed on entity id, so re-running an analysis
    refreshes rows instead of duplicating them.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir
        project_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = project_dir / "index.db"
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS entities (
                entity_id   TEXT PRIMARY KEY,
                name        TEXT NOT NULL,
                language    TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                file_path   TEXT NOT NULL,
                start_line  INTEGER NOT NULL,
                end_line    INTEGER NOT NULL,
                signature   TEXT,
                api_method  TEXT,
                api_endpoint TEXT,
                payload     TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS cross_references (
                source_id       TEXT NOT NULL,
                target_id       TEXT NOT NULL,
                ref_type        TEXT NOT NULL,
                source_language TEXT NOT NULL,
                target_language TEXT NOT NULL,
                confidence      REAL NOT NULL,
                protocol        TEXT,
                metadata        TEXT,
                PRIMARY KEY (source_id, target_id, ref_type)
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_entities_language ON entities(language)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_entities_name ON entities(name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_entities_file ON entities(file_path)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_refs_source ON cross_references(source_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_refs_target ON cross_references(target_id)")
        self.conn.commit()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def update_index(
        self,
        entries: Iterable[CrossLanguageEntity],
        references: Iterable[CrossReference],
    ) -> None:
        entries = list(entries)
        references = list(references)
        with self.conn:
            self.conn.executemany(
                """
                INSERT OR REPLACE INTO entities (
                    entity_id, name, language, entity_type, file_path,
                    start_line, end_line, signature, api_method, api_endpoint, payload
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        e.id, e.name, e.language, e.type, e.file,
                        e.start_line, e.end_line, e.signature, e.api_method, e.api_endpoint,
                        json.dumps(e.to_dict(), default=str),
                    )
                    for e in entries
                ],
            )
            self.conn.executemany(
                """
                INSERT OR REPLACE INTO cross_references (
                    source_id, target_id, ref_type, source_language,
                    target_language, confidence, protocol, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        r.source_id, r.target_id, r.type, r.source_language,
                        r.target_language, r.confidence, r.protocol,
                        json.dumps(r.metadata) if r.metadata else None,
                    )
                    for r in references
                ],
            )
        logger.info("Index updated: %d entities, %d references", len(entries), len(references))

    def clear(self) -> None:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM cross_references")
        cur.execute("DELETE FROM entities")
        self.conn.commit()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_entities(self, language: Optional[str] = None) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        if language:
            rows = cur.execute(
                "SELECT payload FROM entities WHERE language = ? ORDER BY file_path, start_line",
                (language,),
            ).fetchall()
        else:
            rows = cur.execute("SELECT payload FROM entities ORDER BY file_path, start_line").fetchall()
        return [json.loads(row["payload"]) for row in rows]

    def get_references(self, entity_id: Optional[str] = None) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        if entity_id:
            rows = cur.execute(
                "SELECT * FROM cross_references WHERE source_id = ? OR target_id = ?",
                (entity_id, entity_id),
            ).fetchall()
        else:
            rows = cur.execute("SELECT * FROM cross_references").fetchall()
        refs = []
        for row in rows:
            ref = dict(row)
            ref["metadata"] = json.loads(ref["metadata"]) if ref["metadata"] else {}
            refs.append(ref)
        return refs

    def counts(self) -> Dict[str, int]:
        cur = self.conn.cursor()
        entities = cur.execute("SELECT COUNT(*) FROM entities").fetchone()[0]
        references = cur.execute("SELECT COUNT(*) FROM cross_references").fetchone()[0]
        return {"entities": entities, "references": references}
