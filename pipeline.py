# pipeline.py
"""Upload degrade-chain: local analysis, object storage, then AI analysis.

Each step reports a ``StepResult``. The analysis returned to the caller is the
first successful result in ``ANALYSIS_PREFERENCE`` order, so an AI result
supersedes the local report and the local report is always there to fall back on.
"""
import os
import time

from loguru import logger
from werkzeug.utils import secure_filename

import local_analyzer
from errors import AIServiceError, StorageError
from models import StepResult, UploadedFile

LOCAL_ANALYSIS = "local_analysis"
OBJECT_STORAGE = "object_storage"
AI_ANALYSIS = "ai_analysis"

ANALYSIS_PREFERENCE = (AI_ANALYSIS, LOCAL_ANALYSIS)

STORAGE_NOT_CONFIGURED = "Object storage not configured"
AI_NOT_CONFIGURED = "AI analysis not configured"
NO_FILE_URL = "No file URL available for AI analysis"


def first_successful(results, order=ANALYSIS_PREFERENCE):
    for name in order:
        result = results.get(name)
        if result is not None and result.ok:
            return result
    return None


def status_message(service_status):
    storage_ok = service_status["objectStorage"] == "success"
    if storage_ok and service_status["aiAnalysis"] == "success":
        return "File uploaded to object storage and analyzed with AI successfully!"
    if service_status["localAnalysis"] and storage_ok:
        return "File uploaded to object storage with local analysis (AI analysis unavailable)."
    if service_status["localAnalysis"]:
        return "File analyzed locally. Configure object storage and the AI API for enhanced features."
    return "File processed with limited features. Check configuration and try again."


class UploadPipeline:
    def __init__(self, storage, ai_client, store, temp_dir):
        # storage / ai_client are None when their credentials are missing
        self.storage = storage
        self.ai_client = ai_client
        self.store = store
        self.temp_dir = temp_dir

    def _temp_path(self, filename):
        os.makedirs(self.temp_dir, exist_ok=True)
        safe_name = secure_filename(filename) or "upload"
        return os.path.join(self.temp_dir, f"{int(time.time() * 1000)}_{safe_name}")

    def _resolve_instruction(self, instruction_id):
        if not instruction_id:
            return None
        instruction = self.store.get(instruction_id)
        if instruction is None:
            logger.warning(f"No instruction found for id {instruction_id}, analyzing without it")
        return instruction

    def _local_step(self, temp_path, filename, instruction):
        result = local_analyzer.analyze_file(temp_path, filename, instruction)
        return StepResult(LOCAL_ANALYSIS, True, "success", value=result)

    def _storage_step(self, temp_path, filename):
        if self.storage is None:
            return StepResult(OBJECT_STORAGE, False, STORAGE_NOT_CONFIGURED)
        try:
            uploaded = self.storage.upload_file(temp_path, filename)
        except StorageError as e:
            logger.warning(f"Object storage upload failed: {e}")
            return StepResult(OBJECT_STORAGE, False, str(e), error=str(e))
        return StepResult(OBJECT_STORAGE, True, "success", value=uploaded)

    def _ai_step(self, storage_result, filename, instruction):
        if self.ai_client is None:
            return StepResult(AI_ANALYSIS, False, AI_NOT_CONFIGURED)
        if not storage_result.ok or not storage_result.value.direct_url:
            return StepResult(AI_ANALYSIS, False, NO_FILE_URL)
        try:
            result = self.ai_client.analyze_file(storage_result.value.direct_url, filename, instruction)
        except AIServiceError as e:
            logger.warning(f"AI analysis failed, keeping local analysis: {e}")
            return StepResult(AI_ANALYSIS, False, str(e), error=str(e))
        return StepResult(AI_ANALYSIS, True, "success", value=result)

    def run(self, upload, instruction_id=None):
        filename = upload.filename
        temp_path = None
        try:
            temp_path = self._temp_path(filename)
            upload.save(temp_path)
            size = os.path.getsize(temp_path)
            instruction = self._resolve_instruction(instruction_id)

            logger.info(f"Processing upload {filename} ({size} bytes), "
                        f"storage={'on' if self.storage else 'off'}, ai={'on' if self.ai_client else 'off'}")

            steps = [self._local_step(temp_path, filename, instruction)]
            steps.append(self._storage_step(temp_path, filename))
            steps.append(self._ai_step(steps[-1], filename, instruction))
            results = {step.name: step for step in steps}

            analysis = first_successful(results).value
            stored = results[OBJECT_STORAGE].value if results[OBJECT_STORAGE].ok else None
            file_info = stored or UploadedFile(name=filename, size=size)
            file_info.size = size

            service_status = {
                "localAnalysis": results[LOCAL_ANALYSIS].ok,
                "objectStorage": results[OBJECT_STORAGE].status,
                "aiAnalysis": results[AI_ANALYSIS].status,
            }

            return {
                "success": True,
                "file": file_info.to_dict(),
                "analysis": analysis.to_dict(),
                "instructionId": instruction.id if instruction is not None else None,
                "serviceStatus": service_status,
                "steps": [step.to_dict() for step in steps],
                "message": status_message(service_status),
            }
        finally:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as e:
                    logger.warning(f"Failed to clean up temporary file {temp_path}: {e}")
