from config import Settings


def test_defaults_leave_services_unconfigured():
    settings = Settings()
    assert settings.storage_configured is False
    assert settings.ai_configured is False
    assert settings.openai_model == "gpt-4o"
    assert settings.s3_prefix == "uploads/"


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_TEMPERATURE", "0.7")
    monkeypatch.setenv("S3_BUCKET", "bucket")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "id")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.setenv("S3_PUBLIC_READ", "false")
    monkeypatch.setenv("S3_URL_EXPIRES", "600")
    monkeypatch.setenv("INSTRUCTIONS_DIR", str(tmp_path))
    monkeypatch.setenv("INSTRUCTION_STORE", " SQL ")

    settings = Settings.from_env()
    assert settings.ai_configured is True
    assert settings.storage_configured is True
    assert settings.openai_temperature == 0.7
    assert settings.s3_public_read is False
    assert settings.s3_url_expires == 600
    assert settings.instructions_dir == str(tmp_path)
    assert settings.instruction_store == "sql"


def test_bad_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("OPENAI_TEMPERATURE", "warm")
    monkeypatch.setenv("MAX_CONTENT_LENGTH", "lots")
    settings = Settings.from_env()
    assert settings.openai_temperature == 0.2
    assert settings.max_content_length == 32 * 1024 * 1024


def test_storage_needs_all_credentials(monkeypatch):
    monkeypatch.setenv("S3_BUCKET", "bucket")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "id")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "")
    assert Settings.from_env().storage_configured is False
