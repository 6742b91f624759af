from flask import Flask, Blueprint, request, jsonify, current_app
import os
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from config import Settings
from errors import (AIServiceError, AIRateLimitError, AIAuthenticationError, StorageError,
                    InstructionNotFound, InstructionValidationError)
from models import InstructionRecord, new_instruction_id, is_text_instruction, binary_placeholder
from OPENAI import AIClient
from pipeline import UploadPipeline
from storage import ObjectStorage
from store import InstructionStore, build_store

api = Blueprint("api", __name__)

EXTENSION_KEY = "file_toolkit"


@dataclass
class Services:
    settings: Settings
    store: InstructionStore
    storage: Optional[ObjectStorage]
    ai_client: Optional[AIClient]
    pipeline: UploadPipeline


def services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def _error(message, status):
    return jsonify({"success": False, "error": message}), status


def _ai_error(e):
    if isinstance(e, AIRateLimitError):
        return _error(str(e), 429)
    if isinstance(e, AIAuthenticationError):
        return _error(str(e), 401)
    return _error(str(e), 502)


def _require_instruction(svc, instruction_id):
    record = svc.store.get(instruction_id)
    if record is None:
        raise InstructionNotFound(instruction_id)
    return record


@api.errorhandler(InstructionNotFound)
def instruction_not_found(e):
    return _error('Instruction not found', 404)


@api.errorhandler(InstructionValidationError)
def invalid_instruction_update(e):
    return _error(str(e), 400)


def _form_flag(value):
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


@api.route('/')
def index():
    return "<h3>File feedback toolkit is running. POST files to /api/upload, manage instructions at /api/instructions</h3>"


@api.route('/health')
def health():
    return jsonify({"ok": True})


# --- Service status ---

@api.route('/api/status')
def status():
    svc = services()
    has_storage = svc.storage is not None
    has_ai = svc.ai_client is not None

    if not has_storage:
        storage_status, storage_description = 'not-configured', 'Object storage not configured'
    elif svc.settings.s3_public_read:
        storage_status, storage_description = 'ready', 'Object storage backup ready with public links'
    else:
        storage_status, storage_description = 'ready-private', 'Object storage ready; files shared through presigned URLs only'

    result = {
        "services": {
            "localAnalysis": {
                "available": True,
                "status": "ready",
                "description": "Basic file analysis using local processing",
            },
            "objectStorage": {
                "available": has_storage,
                "status": storage_status,
                "description": storage_description,
            },
            "aiAnalysis": {
                "available": has_ai,
                "status": "ready" if has_ai else "not-configured",
                "description": "AI-powered analysis available" if has_ai else "AI API not configured",
            },
        },
        "recommendations": [],
    }

    if not has_storage:
        result["recommendations"].append({
            "service": "objectStorage",
            "message": "Set S3_BUCKET, AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY for file backup",
            "priority": "medium",
        })
    if not has_ai:
        result["recommendations"].append({
            "service": "aiAnalysis",
            "message": "Configure OPENAI_API_KEY for AI-powered file analysis",
            "priority": "medium",
        })

    return jsonify(result)


# --- File upload ---

@api.route('/api/upload', methods=['POST'])
def upload_file():
    file = request.files.get('file')
    if file is None or not file.filename:
        return _error('No file provided', 400)

    instruction_id = request.form.get('instructionFileId') or request.form.get('instructionId')

    try:
        result = services().pipeline.run(file, instruction_id or None)
    except Exception:
        logger.exception("Error processing file upload")
        return _error('Failed to process file upload', 500)

    return jsonify(result)


# --- Instructions ---

@api.route('/api/instructions', methods=['GET'])
def list_instructions():
    instructions = services().store.list()
    return jsonify({"success": True, "instructions": [r.to_dict() for r in instructions]})


@api.route('/api/instructions/<instruction_id>', methods=['GET'])
def get_instruction(instruction_id):
    record = _require_instruction(services(), instruction_id)
    return jsonify({"success": True, "instruction": record.to_dict()})


def _backup_instruction(svc, record, data):
    if svc.storage is None:
        return "Object storage not configured"
    try:
        uploaded = svc.storage.upload_bytes(data, f"{record.id}_{record.file_name}")
    except StorageError as e:
        logger.warning(f"Instruction backup failed, continuing without it: {e}")
        return str(e)

    record.public_url = uploaded.public_url
    record.direct_url = uploaded.direct_url
    record.file_id = uploaded.file_id
    record.has_backup = True
    return "success"


@api.route('/api/instructions', methods=['POST'])
def create_instruction():
    file = request.files.get('instruction')
    if file is None or not file.filename:
        return _error('No instruction file provided', 400)

    svc = services()
    try:
        data = file.read()
        file_name = file.filename

        if is_text_instruction(file_name):
            content, is_binary = data.decode('utf-8', errors='replace'), False
        else:
            content, is_binary = binary_placeholder(file_name), True

        custom_prompt = (request.form.get('customPrompt') or '').strip() or None
        is_pmpa = _form_flag(request.form.get('isPMPA')) or 'pmp' in file_name.lower()

        record = InstructionRecord(
            id=new_instruction_id(),
            file_name=file_name,
            content=content,
            is_binary=is_binary,
            custom_prompt=custom_prompt,
            is_pmpa=is_pmpa,
        )
        backup_status = _backup_instruction(svc, record, data)
        svc.store.set(record)
    except Exception:
        logger.exception("Error uploading instruction file")
        return _error('Failed to upload instruction file', 500)

    logger.info(f"Stored instruction {record.id} ({file_name}, binary={is_binary}, backup={backup_status})")
    return jsonify({
        "success": True,
        "instructionId": record.id,
        "fileName": record.file_name,
        "content": record.content,
        "publicUrl": record.public_url,
        "directUrl": record.direct_url,
        "backupStatus": backup_status,
        "instruction": record.to_dict(),
        "message": ('File uploaded successfully with object storage backup' if record.has_backup
                    else 'File uploaded successfully (object storage backup unavailable)'),
    })


def _validated_updates(record, data):
    """Check every PATCH field before touching the record.

    Raises InstructionValidationError on the first bad field, so a rejected
    request never leaves the record half-updated.
    """
    updates = {}

    if 'content' in data:
        if record.is_binary:
            raise InstructionValidationError('Content of binary instruction files cannot be edited')
        if not isinstance(data['content'], str):
            raise InstructionValidationError('content must be a string')
        updates['content'] = data['content']

    for key, attr in (('customPrompt', 'custom_prompt'), ('feedback', 'feedback')):
        if key in data:
            value = data[key]
            if value is not None and not isinstance(value, str):
                raise InstructionValidationError(f'{key} must be a string')
            if key == 'customPrompt' and value is not None:
                value = value.strip() or None
            updates[attr] = value

    if 'inputData' in data:
        input_data = data['inputData'] or {}
        if not isinstance(input_data, dict):
            raise InstructionValidationError('inputData must be an object')
        updates['input_data'] = {str(k): str(v) for k, v in input_data.items()}

    if 'isPMPA' in data:
        if not isinstance(data['isPMPA'], bool):
            raise InstructionValidationError('isPMPA must be a boolean')
        updates['is_pmpa'] = data['isPMPA']

    return updates


@api.route('/api/instructions', methods=['PATCH'])
def update_instruction():
    data = _json_body()
    if data is None or not data.get('id'):
        return _error('Instruction ID is required', 400)

    svc = services()
    record = _require_instruction(svc, data['id'])
    updates = _validated_updates(record, data)

    for attr, value in updates.items():
        setattr(record, attr, value)
    svc.store.set(record)

    logger.info(f"Updated instruction {record.id}: {', '.join(updates) or 'no changes'}")
    return jsonify({"success": True, "instruction": record.to_dict()})


@api.route('/api/instructions', methods=['DELETE'])
def delete_instruction():
    instruction_id = request.args.get('id')
    if not instruction_id:
        return _error('Instruction ID is required', 400)

    svc = services()
    record = _require_instruction(svc, instruction_id)
    if not svc.store.delete(instruction_id):
        raise InstructionNotFound(instruction_id)

    if record.file_id and svc.storage is not None:
        try:
            svc.storage.delete_file(record.file_id)
        except StorageError as e:
            logger.warning(f"Could not delete backup of {instruction_id}: {e}")

    logger.info(f"Deleted instruction {instruction_id}")
    return jsonify({"success": True, "message": f"Instruction {instruction_id} deleted"})


def _instruction_for_ai(svc):
    """Shared lookup for the AI sub-actions; returns (record, error_response)."""
    data = _json_body() or {}
    instruction_id = data.get('instructionId')
    if not instruction_id:
        return None, _error('Instruction ID is required', 400)

    record = _require_instruction(svc, instruction_id)
    if svc.ai_client is None:
        return None, _error('AI API not configured. Please set the OPENAI_API_KEY environment variable.', 503)
    return record, None


@api.route('/api/instructions/generate-feedback', methods=['POST'])
def generate_feedback():
    svc = services()
    record, problem = _instruction_for_ai(svc)
    if problem:
        return problem

    try:
        feedback = svc.ai_client.generate_instruction_feedback(record)
    except AIServiceError as e:
        logger.warning(f"Feedback generation for {record.id} failed: {e}")
        return _ai_error(e)
    except Exception:
        logger.exception("Error generating feedback")
        return _error('Internal server error while generating feedback', 500)

    # Regeneration replaces whatever feedback was there
    record.feedback = feedback
    svc.store.set(record)
    return jsonify({"success": True, "feedback": feedback, "instruction": record.to_dict()})


@api.route('/api/instructions/fill-checklist', methods=['POST'])
def fill_checklist():
    svc = services()
    record, problem = _instruction_for_ai(svc)
    if problem:
        return problem

    try:
        checklist = svc.ai_client.fill_checklist(record)
    except AIServiceError as e:
        logger.warning(f"Checklist generation for {record.id} failed: {e}")
        return _ai_error(e)
    except Exception:
        logger.exception("Error generating checklist")
        return _error('Internal server error while generating checklist', 500)

    record.checklist = checklist
    svc.store.set(record)
    return jsonify({
        "success": True,
        "checklist": [item.to_dict() for item in checklist],
        "instruction": record.to_dict(),
    })


@api.app_errorhandler(413)
def too_large(e):
    return _error('Uploaded file is too large', 413)


def create_app(settings=None, store=None, storage=None, ai_client=None):
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = settings.max_content_length

    if store is None:
        store = build_store(settings, app)
    if storage is None and settings.storage_configured:
        storage = ObjectStorage(settings)
    if ai_client is None and settings.ai_configured:
        ai_client = AIClient(settings)

    logger.info(f"Available services: storage={storage is not None}, ai={ai_client is not None}")

    app.extensions[EXTENSION_KEY] = Services(
        settings=settings,
        store=store,
        storage=storage,
        ai_client=ai_client,
        pipeline=UploadPipeline(storage, ai_client, store, settings.upload_temp_dir),
    )
    app.register_blueprint(api)
    return app


app = create_app()


if __name__ == '__main__':
    host = os.environ.get('APP_HOST', '0.0.0.0')
    port = int(os.environ.get('APP_PORT', 8000))
    # Debug should be False in production
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(host=host, port=port, debug=debug)
