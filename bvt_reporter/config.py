"""
Configuration settings for the BVT Reporter
"""
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "BVT Reporter"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Remote collector
    REPORT_SERVICE_URL: str = "http://localhost:5000/api/runs"
    STORAGE_SERVICE_URL: str = "http://localhost:5000/api/storage"
    TOKEN: Optional[str] = None
    CLIENT_SOURCE: str = "cucumber_js"
    REQUEST_TIMEOUT: float = 60.0
    REPORT_LINK_BASE_URL: str = "http://localhost:3000"

    # Delivery toggle; False turns every network call into a no-op
    UPLOAD_REPORTS: bool = True

    # Run metadata sent with every run/test case
    MODE: str = "local"  # cloud | executions | local
    BROWSER: str = "chromium"
    GIT_BRANCH: str = "main"
    VIDEO_ID: Optional[str] = None
    RETRY_ID: Optional[str] = None
    RERUN_ID: Optional[str] = None
    STATUS_UUID: Optional[str] = None
    RUN_ID: Optional[str] = None
    PROJECT_ID: Optional[str] = None

    # Local persistence; when set, records are written here instead of uploaded
    REPORT_FOLDER: Optional[Path] = None
    TEST_DATA_FILE: Optional[Path] = None

    # Delivery limits
    MAX_RETRIES: int = 3
    BACKOFF_BASE_SECONDS: float = 1.0
    ARTIFACT_CONCURRENCY: int = 5
    MAX_LOG_ENTRIES: int = 1000

    # Recovery
    RETRAIN_ENABLED: bool = True
    REPAIR_COMMAND: Optional[str] = None
    RERUN_COMMAND: Optional[str] = None
    ENV_NAME: Optional[str] = None
    PREVIOUS_FAILED_STEPS: str = ""
    WORKING_DIR: Path = Path.cwd()

    class Config:
        env_file = ".env"
        extra = "allow"

    @property
    def effective_log_level(self) -> str:
        """DEBUG forces debug logging whatever LOG_LEVEL says."""
        return "DEBUG" if self.DEBUG else self.LOG_LEVEL.upper()

    @property
    def normalized_mode(self) -> str:
        """Collapse unknown modes to 'local'."""
        return self.MODE if self.MODE in ("cloud", "executions") else "local"

    def previous_failed_steps(self) -> List[int]:
        """Parse PREVIOUS_FAILED_STEPS ("1,3") into step indices."""
        indices = []
        for item in self.PREVIOUS_FAILED_STEPS.split(","):
            item = item.strip()
            if item.isdigit():
                indices.append(int(item))
        return indices


settings = Settings()
