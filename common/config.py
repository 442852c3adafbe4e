from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env junto al repo; las variables reales del entorno siempre ganan.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    store_backend: str

    use_mqtt: bool
    mqtt_broker: str
    mqtt_port: int
    mqtt_username: str | None
    mqtt_password: str | None

    redis_url: str | None
    events_channel: str

    stats_interval_seconds: float
    shutdown_grace_seconds: float
    frontend_url: str

    temp_warning: float
    temp_critical: float
    vib_warning: float
    vib_critical: float
    sound_warning: float
    sound_critical: float

    def default_thresholds(self) -> dict[str, dict[str, float]]:
        """Umbrales globales por defecto en el formato del ThresholdStore."""
        return {
            "temperature": {"warning": self.temp_warning, "critical": self.temp_critical},
            "vibration": {"warning": self.vib_warning, "critical": self.vib_critical},
            "sound": {"warning": self.sound_warning, "critical": self.sound_critical},
        }


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("MOTOR_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    database_url = os.getenv("DATABASE_URL", "sqlite:///./motor_monitor.db")
    # "sql" usa SQLAlchemy sobre DATABASE_URL, "memory" es solo para desarrollo/tests.
    store_backend = os.getenv("STORE_BACKEND", "sql").strip().lower()

    return Settings(
        database_url=database_url,
        store_backend=store_backend,
        use_mqtt=_env_bool("USE_MQTT"),
        mqtt_broker=os.getenv("MQTT_BROKER", "127.0.0.1"),
        mqtt_port=int(os.getenv("MQTT_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        redis_url=os.getenv("REDIS_URL") or None,
        events_channel=os.getenv("EVENTS_CHANNEL", "motor:events"),
        stats_interval_seconds=float(os.getenv("STATS_INTERVAL_SECONDS", "10")),
        shutdown_grace_seconds=float(os.getenv("SHUTDOWN_GRACE_SECONDS", "10")),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        temp_warning=float(os.getenv("TEMP_WARNING_THRESHOLD", "35")),
        temp_critical=float(os.getenv("TEMP_CRITICAL_THRESHOLD", "40")),
        vib_warning=float(os.getenv("VIB_WARNING_THRESHOLD", "1.2")),
        vib_critical=float(os.getenv("VIB_CRITICAL_THRESHOLD", "1.8")),
        sound_warning=float(os.getenv("SOUND_WARNING_THRESHOLD", "0.8")),
        sound_critical=float(os.getenv("SOUND_CRITICAL_THRESHOLD", "1.0")),
    )
