# models.py
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

PREVIEW_CHARS = 200

TEXT_INSTRUCTION_EXTENSIONS = ('.txt', '.md', '.csv', '.json', '.xml', '.js', '.ts', '.html', '.css')

CHECKLIST_ITEMS = [
    "Change History - Is document control maintained? Eg. Ver No, reviewed and approved",
    "Resource Tracker - Is this section contains updated Infrastructure Plan, Human Resource Plan, Training Plan?",
    "ACD Tracker - Is Assumption, Constraint and Dependencies tracker maintained?",
    "CI & Review Plan - Is all CI work products maintains there versions, location, baseline, approval? "
    "Is name of the artifact follow the naming convention as defined by the project in PMP?",
    "Non CI & Records - Is all Non CI work products maintains there versions, location & Records? "
    "Is name of the artifact follow the naming convention as defined by the project in PMP?",
    "Lesson Learnt, Improvements and Best Practices - Is details of Lesson Learnt articulated well and accepted? "
    "Is mentioned improvement logged into digite? Is best practices identified and applied in the project? "
    "Is Unique ID is given to each learning and best practice.",
    "Requirement Provider - Is requirement providers details identify? "
    "Who will be giving details on requirements of the project.",
    "Supplier - Is PM mention the Name of the supplier? Is PM mention the products being supplied by the supplier?",
]

COMPLIANCE_VALUES = ("Yes", "No", "Partial", "Not Found")


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


def new_instruction_id():
    return f"instruction_{int(time.time() * 1000)}"


def is_text_instruction(filename):
    return (filename or "").lower().endswith(TEXT_INSTRUCTION_EXTENSIONS)


def binary_placeholder(filename):
    return f"[Binary file: {filename}] - Content will be processed by AI when analyzing files."


@dataclass
class UploadedFile:
    name: str
    size: int
    file_id: Optional[str] = None
    public_url: Optional[str] = None
    direct_url: Optional[str] = None

    def to_dict(self):
        return {
            "name": self.name,
            "size": self.size,
            "fileId": self.file_id,
            "publicUrl": self.public_url,
            "directUrl": self.direct_url,
        }


@dataclass
class ChecklistItem:
    sr_no: int
    checklist: str
    compliance: str = "Not Found"
    remark: str = ""

    def to_dict(self):
        return {
            "srNo": self.sr_no,
            "checklist": self.checklist,
            "compliance": self.compliance,
            "remark": self.remark,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            sr_no=int(data.get("srNo", data.get("sr_no", 0))),
            checklist=data.get("checklist", ""),
            compliance=data.get("compliance", "Not Found"),
            remark=data.get("remark", ""),
        )


@dataclass
class AnalysisResult:
    success: bool
    feedback: str
    timestamp: str = field(default_factory=utc_now_iso)
    file_info: Optional[dict] = None
    error: Optional[str] = None
    source: str = "local"

    def to_dict(self):
        data = {
            "success": self.success,
            "feedback": self.feedback,
            "timestamp": self.timestamp,
            "source": self.source,
        }
        if self.file_info is not None:
            data["fileInfo"] = self.file_info
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class InstructionRecord:
    id: str
    file_name: str
    content: str
    is_binary: bool = False
    custom_prompt: Optional[str] = None
    is_pmpa: bool = False
    feedback: Optional[str] = None
    checklist: Optional[List[ChecklistItem]] = None
    input_data: Dict[str, str] = field(default_factory=dict)
    public_url: Optional[str] = None
    direct_url: Optional[str] = None
    file_id: Optional[str] = None
    has_backup: bool = False
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def size(self):
        return len(self.content or "")

    @property
    def remote_url(self):
        return self.direct_url or self.public_url

    def metadata(self):
        """Everything except the content body, keyed the way the API speaks."""
        return {
            "id": self.id,
            "fileName": self.file_name,
            "isBinary": self.is_binary,
            "customPrompt": self.custom_prompt,
            "isPMPA": self.is_pmpa,
            "feedback": self.feedback,
            "pmpChecklist": [item.to_dict() for item in self.checklist] if self.checklist is not None else None,
            "inputData": dict(self.input_data),
            "publicUrl": self.public_url,
            "directUrl": self.direct_url,
            "fileId": self.file_id,
            "hasBackup": self.has_backup,
            "createdAt": self.created_at,
            "size": self.size,
        }

    def to_dict(self):
        data = self.metadata()
        preview = self.content[:PREVIEW_CHARS] + ("..." if len(self.content) > PREVIEW_CHARS else "")
        data["content"] = preview
        data["fullContent"] = self.content
        return data

    @classmethod
    def from_metadata(cls, meta, content):
        checklist = meta.get("pmpChecklist")
        if checklist is not None and (not isinstance(checklist, list)
                                      or not all(isinstance(item, dict) for item in checklist)):
            raise ValueError("pmpChecklist must be a list of objects")
        input_data = meta.get("inputData") or {}
        if not isinstance(input_data, dict):
            raise ValueError("inputData must be an object")
        return cls(
            id=meta["id"],
            file_name=meta.get("fileName") or meta["id"],
            content=content,
            is_binary=bool(meta.get("isBinary", False)),
            custom_prompt=meta.get("customPrompt"),
            is_pmpa=bool(meta.get("isPMPA", False)),
            feedback=meta.get("feedback"),
            checklist=[ChecklistItem.from_dict(item) for item in checklist] if checklist is not None else None,
            input_data=dict(input_data),
            public_url=meta.get("publicUrl"),
            direct_url=meta.get("directUrl"),
            file_id=meta.get("fileId"),
            has_backup=bool(meta.get("hasBackup", False)),
            created_at=meta.get("createdAt") or utc_now_iso(),
        )


@dataclass
class StepResult:
    name: str
    ok: bool
    status: str
    value: object = None
    error: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        data.pop("value")
        return data


class InstructionRow(db.Model):
    __tablename__ = "instructions"

    id = db.Column(db.String(64), primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    is_binary = db.Column(db.Boolean, nullable=False, default=False)
    custom_prompt = db.Column(db.Text)
    is_pmpa = db.Column(db.Boolean, nullable=False, default=False)
    feedback = db.Column(db.Text)
    checklist_json = db.Column(db.JSON)
    input_data = db.Column(db.JSON)
    public_url = db.Column(db.String(1024))
    direct_url = db.Column(db.String(2048))
    file_id = db.Column(db.String(512))
    has_backup = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.String(40), nullable=False)

    def to_record(self):
        meta = {
            "id": self.id,
            "fileName": self.file_name,
            "isBinary": self.is_binary,
            "customPrompt": self.custom_prompt,
            "isPMPA": self.is_pmpa,
            "feedback": self.feedback,
            "pmpChecklist": self.checklist_json,
            "inputData": self.input_data,
            "publicUrl": self.public_url,
            "directUrl": self.direct_url,
            "fileId": self.file_id,
            "hasBackup": self.has_backup,
            "createdAt": self.created_at,
        }
        return InstructionRecord.from_metadata(meta, self.content)

    def update_from(self, record):
        self.file_name = record.file_name
        self.content = record.content
        self.is_binary = record.is_binary
        self.custom_prompt = record.custom_prompt
        self.is_pmpa = record.is_pmpa
        self.feedback = record.feedback
        self.checklist_json = [item.to_dict() for item in record.checklist] if record.checklist is not None else None
        self.input_data = dict(record.input_data)
        self.public_url = record.public_url
        self.direct_url = record.direct_url
        self.file_id = record.file_id
        self.has_backup = record.has_backup
        self.created_at = record.created_at
