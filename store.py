# store.py
"""Instruction record storage.

The routes only ever talk to an ``InstructionStore``. Two backends exist:

- ``MemoryInstructionStore``: a process-local dict, optionally mirrored to a
  secondary persistence (``FileSystemMirror``) on a best-effort basis.
- ``SQLInstructionStore``: a Flask-SQLAlchemy table for deployments that have
  a real database.
"""
import json
import os

from loguru import logger

from models import db, InstructionRecord, InstructionRow


class InstructionStore:
    def get(self, instruction_id):
        raise NotImplementedError

    def set(self, record):
        raise NotImplementedError

    def delete(self, instruction_id) -> bool:
        raise NotImplementedError

    def list(self):
        raise NotImplementedError


def _newest_first(records):
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class FileSystemMirror:
    """Writes each record as ``<id>.txt`` (content) plus ``<id>.meta.json``."""

    def __init__(self, directory):
        self.directory = directory
        self.enabled = True
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            logger.warning(f"Instruction mirror disabled, cannot create {directory}: {e}")
            self.enabled = False

    def _content_path(self, instruction_id):
        return os.path.join(self.directory, f"{instruction_id}.txt")

    def _meta_path(self, instruction_id):
        return os.path.join(self.directory, f"{instruction_id}.meta.json")

    def save(self, record):
        if not self.enabled:
            return
        with open(self._content_path(record.id), "w", encoding="utf-8", newline="") as f:
            f.write(record.content)
        with open(self._meta_path(record.id), "w", encoding="utf-8") as f:
            json.dump(record.metadata(), f, indent=2)

    def remove(self, instruction_id):
        if not self.enabled:
            return
        for path in (self._content_path(instruction_id), self._meta_path(instruction_id)):
            if os.path.exists(path):
                os.remove(path)

    def load_all(self):
        if not self.enabled or not os.path.isdir(self.directory):
            return []

        records = []
        for name in os.listdir(self.directory):
            if not name.endswith(".txt"):
                continue
            instruction_id = name[:-len(".txt")]
            try:
                with open(self._content_path(instruction_id), encoding="utf-8", newline="") as f:
                    content = f.read()
                meta = {"id": instruction_id}
                meta_path = self._meta_path(instruction_id)
                if os.path.exists(meta_path):
                    with open(meta_path, encoding="utf-8") as f:
                        loaded = json.load(f)
                    if not isinstance(loaded, dict):
                        raise ValueError("metadata is not a JSON object")
                    meta.update(loaded)
                records.append(InstructionRecord.from_metadata(meta, content))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable instruction {instruction_id}: {e}")
        return records


class MemoryInstructionStore(InstructionStore):
    def __init__(self, mirror=None):
        self._records = {}
        self.mirror = mirror
        if mirror is not None:
            for record in mirror.load_all():
                self._records[record.id] = record
            if self._records:
                logger.info(f"Loaded {len(self._records)} instruction(s) from {mirror.directory}")

    def get(self, instruction_id):
        return self._records.get(instruction_id)

    def set(self, record):
        self._records[record.id] = record
        if self.mirror is not None:
            try:
                self.mirror.save(record)
            except OSError as e:
                logger.warning(f"Could not mirror instruction {record.id} to disk: {e}")
        return record

    def delete(self, instruction_id) -> bool:
        if instruction_id not in self._records:
            return False
        del self._records[instruction_id]
        if self.mirror is not None:
            try:
                self.mirror.remove(instruction_id)
            except OSError as e:
                logger.warning(f"Could not remove mirrored instruction {instruction_id}: {e}")
        return True

    def list(self):
        return _newest_first(self._records.values())


class SQLInstructionStore(InstructionStore):
    """Needs an application context, which every request already has."""

    def get(self, instruction_id):
        row = db.session.get(InstructionRow, instruction_id)
        return row.to_record() if row is not None else None

    def set(self, record):
        row = db.session.get(InstructionRow, record.id)
        if row is None:
            row = InstructionRow(id=record.id)
            db.session.add(row)
        row.update_from(record)
        db.session.commit()
        return record

    def delete(self, instruction_id) -> bool:
        row = db.session.get(InstructionRow, instruction_id)
        if row is None:
            return False
        db.session.delete(row)
        db.session.commit()
        return True

    def list(self):
        rows = InstructionRow.query.order_by(InstructionRow.created_at.desc()).all()
        return [row.to_record() for row in rows]


def build_store(settings, app=None):
    if settings.instruction_store == "sql":
        if app is None:
            raise ValueError("The sql instruction store needs the Flask app to bind to")
        app.config['SQLALCHEMY_DATABASE_URI'] = settings.database_url
        app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
        db.init_app(app)
        with app.app_context():
            db.create_all()
        logger.info(f"Using SQL instruction store at {settings.database_url}")
        return SQLInstructionStore()

    logger.info(f"Using in-memory instruction store mirrored to {settings.instructions_dir}")
    return MemoryInstructionStore(mirror=FileSystemMirror(settings.instructions_dir))
