import os
import tempfile

# Keep the module-level app in app.py away from real credentials and the working tree
_SESSION_DIR = tempfile.mkdtemp(prefix="file-toolkit-tests-")
os.environ["INSTRUCTIONS_DIR"] = os.path.join(_SESSION_DIR, "instructions")
os.environ["UPLOAD_TEMP_DIR"] = os.path.join(_SESSION_DIR, "temp")
os.environ["INSTRUCTION_STORE"] = "memory"
for _name in ("OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT", "S3_BUCKET", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
    os.environ[_name] = ""

import pytest

from config import Settings
from store import FileSystemMirror, MemoryInstructionStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        upload_temp_dir=str(tmp_path / "temp"),
        instructions_dir=str(tmp_path / "instructions"),
    )


@pytest.fixture
def store(settings):
    return MemoryInstructionStore(mirror=FileSystemMirror(settings.instructions_dir))


@pytest.fixture
def make_client(settings, store):
    from app import create_app

    def _make(storage=None, ai=None):
        app = create_app(settings=settings, store=store, storage=storage, ai_client=ai)
        app.config["TESTING"] = True
        return app.test_client()

    return _make
