from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the project directory (parent of the package directory)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # HTTPS/SSL settings for uvicorn
    ssl_enabled: bool = False
    ssl_certfile: Optional[str] = None  # e.g. /etc/letsencrypt/live/domain.com/fullchain.pem
    ssl_keyfile: Optional[str] = None  # e.g. /etc/letsencrypt/live/domain.com/privkey.pem

    # Full SQLAlchemy URL; when set it wins over the db_* fields below
    database_url: Optional[str] = None

    # Database settings - confidential values from .env
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "library"
    db_user: str = "library"
    db_password: str = ""  # Confidential, from .env

    # Database SSL settings
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None
    db_ssl_key: Optional[str] = None
    db_ssl_root_cert: Optional[str] = None

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # Library timezone, used for "today" boundaries in reports
    library_timezone: str = "Asia/Kuala_Lumpur"

    # MQTT notification channel
    mqtt_enabled: bool = True
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None  # Confidential
    mqtt_notification_topic_format: str = "library/users/{user_id}/notifications"

    # MQTT TLS/SSL settings
    mqtt_use_tls: bool = False
    mqtt_tls_insecure: bool = False  # Self-signed certs only, never in production
    mqtt_ca_cert: Optional[str] = None
    mqtt_client_cert: Optional[str] = None  # Mutual TLS
    mqtt_client_key: Optional[str] = None  # Mutual TLS

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
