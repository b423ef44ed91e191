"""
PDF2CSV Configuration
Supports AWS Parameter Store for production secrets
"""
import logging
import os
import tempfile

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))


def env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def get_parameter(name: str, default: str = "") -> str:
    """Get parameter from AWS Parameter Store or environment"""
    # Environment variable takes precedence
    env_key = name.upper().replace("-", "_").replace("/", "_")
    if env_key in os.environ:
        return os.environ[env_key]

    if env_flag("USE_PARAMETER_STORE"):
        try:
            ssm = boto3.client("ssm", region_name=os.environ.get("AWS_REGION", "us-east-1"))
            path = os.environ.get("PARAMETER_STORE_PATH", "/pdf2csv/prod/")
            response = ssm.get_parameter(Name=f"{path}{name}", WithDecryption=True)
            return response["Parameter"]["Value"]
        except (BotoCoreError, ClientError) as e:
            logger.warning("Could not load %s from Parameter Store: %s", name, e)

    return default


class Config:
    """Base configuration"""
    # Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-in-production")
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(50 * 1024 * 1024)))

    # Database (only holds artifacts when STORAGE_BACKEND=database)
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///pdf2csv.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Fix Render's postgres:// URL
    if SQLALCHEMY_DATABASE_URI.startswith("postgres://"):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace("postgres://", "postgresql://", 1)

    # Conversion workflow
    CONVERSION_WEBHOOK_URL = os.environ.get("CONVERSION_WEBHOOK_URL") or os.environ.get("N8N_WEBHOOK_URL", "")
    CALLBACK_SECRET = os.environ.get("CALLBACK_SECRET", "")
    DISPATCH_TIMEOUT_SECONDS = float(os.environ.get("DISPATCH_TIMEOUT_SECONDS", "30"))
    DISPATCH_MAX_BYTES = int(os.environ.get("DISPATCH_MAX_BYTES", str(50 * 1024 * 1024)))
    DISPATCH_ASYNC = env_flag("DISPATCH_ASYNC", "1")

    # Uploads
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))
    UPLOAD_DIR = os.environ.get("UPLOAD_DIR") or os.path.join(tempfile.gettempdir(), "pdf2csv_uploads")

    # Job registry
    JOB_TTL_SECONDS = int(os.environ.get("JOB_TTL_SECONDS", "86400"))
    JOB_SWEEP_INTERVAL_SECONDS = int(os.environ.get("JOB_SWEEP_INTERVAL_SECONDS", "3600"))
    JOB_SWEEP_ENABLED = env_flag("JOB_SWEEP_ENABLED", "1")

    # Storage
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "local")
    STORAGE_DIR = os.environ.get("STORAGE_DIR") or os.path.join(_BASE_DIR, "storage", "csv")
    BASE_URL = os.environ.get("BASE_URL", "http://localhost:8080")
    PRESIGN_EXPIRES_SECONDS = int(os.environ.get("PRESIGN_EXPIRES_SECONDS", "3600"))

    # AWS / R2
    AWS_REGION = os.environ.get("AWS_REGION", "")
    AWS_S3_BUCKET = os.environ.get("AWS_S3_BUCKET", "")
    S3_ENDPOINT_URL = os.environ.get("S3_ENDPOINT_URL", "")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Job listing, storage stats and cleanup endpoints
    DEBUG_ROUTES = env_flag("DEBUG_ROUTES", "1")

    # App Version
    APP_VERSION = os.environ.get("APP_VERSION", "1.0.0")
    BUILD_TIME = os.environ.get("BUILD_TIME", "")
    GIT_COMMIT = os.environ.get("GIT_COMMIT", "")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False
    DEBUG_ROUTES = False

    # Override with Parameter Store in production
    SECRET_KEY = get_parameter("secret-key", Config.SECRET_KEY)
    CALLBACK_SECRET = get_parameter("callback-secret", Config.CALLBACK_SECRET)


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    CALLBACK_SECRET = "test-callback-secret"
    CONVERSION_WEBHOOK_URL = "http://n8n.test/webhook/pdf2csv"
    BASE_URL = "http://localhost"
    DISPATCH_ASYNC = False
    JOB_SWEEP_ENABLED = False
    DEBUG_ROUTES = True


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
