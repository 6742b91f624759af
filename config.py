# config.py
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name, default):
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Settings:
    # AI inference
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_temperature: float = 0.2
    azure_openai_endpoint: str = ""
    azure_openai_api_version: str = "2024-12-01-preview"

    # Object storage
    s3_bucket: str = ""
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    s3_endpoint_url: str = ""
    s3_prefix: str = "uploads/"
    s3_public_read: bool = True
    s3_url_expires: int = 3600

    # Local filesystem
    upload_temp_dir: str = field(default_factory=lambda: os.path.join(os.getcwd(), "temp"))
    instructions_dir: str = field(default_factory=lambda: os.path.join(os.getcwd(), "instructions"))
    max_content_length: int = 32 * 1024 * 1024

    # Instruction store backend: "memory" or "sql"
    instruction_store: str = "memory"
    database_url: str = "sqlite:///instructions.db"

    @classmethod
    def from_env(cls):
        defaults = cls()
        try:
            temperature = float(os.environ.get("OPENAI_TEMPERATURE", defaults.openai_temperature))
        except ValueError:
            temperature = defaults.openai_temperature

        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            openai_model=os.environ.get("OPENAI_MODEL", defaults.openai_model),
            openai_temperature=temperature,
            azure_openai_endpoint=os.environ.get("AZURE_OPENAI_ENDPOINT", ""),
            azure_openai_api_version=os.environ.get("AZURE_OPENAI_API_VERSION", defaults.azure_openai_api_version),
            s3_bucket=os.environ.get("S3_BUCKET", ""),
            aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", ""),
            aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", ""),
            aws_region=os.environ.get("AWS_REGION", defaults.aws_region),
            s3_endpoint_url=os.environ.get("S3_ENDPOINT_URL", ""),
            s3_prefix=os.environ.get("S3_PREFIX", defaults.s3_prefix),
            s3_public_read=_env_flag("S3_PUBLIC_READ", True),
            s3_url_expires=_env_int("S3_URL_EXPIRES", defaults.s3_url_expires),
            upload_temp_dir=os.environ.get("UPLOAD_TEMP_DIR", defaults.upload_temp_dir),
            instructions_dir=os.environ.get("INSTRUCTIONS_DIR", defaults.instructions_dir),
            max_content_length=_env_int("MAX_CONTENT_LENGTH", defaults.max_content_length),
            instruction_store=os.environ.get("INSTRUCTION_STORE", defaults.instruction_store).strip().lower(),
            database_url=os.environ.get("DATABASE_URL", defaults.database_url),
        )

    @property
    def storage_configured(self) -> bool:
        return bool(self.s3_bucket and self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def ai_configured(self) -> bool:
        return bool(self.openai_api_key)
