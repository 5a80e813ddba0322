"""
Custody Service Settings

Configuration management using Pydantic settings with environment variable support.
"""

from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from custody_service.core.retention import RetentionPolicy
from custody_service.models.evidence import EvidenceType


class Settings(BaseSettings):
    """Custody Service configuration"""

    # Service Configuration
    service_name: str = Field(default="evidence-custody-service", description="Service name")
    environment: str = Field(default="development", description="Environment (development, production)")
    port: int = Field(default=8004, description="Service port")
    host: str = Field(default="0.0.0.0", description="Service host")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./custody.db",
        description="Database connection URL"
    )
    create_tables: bool = Field(
        default=True,
        description="Create tables on startup (disable when Alembic manages the schema)"
    )

    # File Storage Configuration
    # STORAGE_PROVIDER: "local" (default) or "s3"
    storage_provider: str = Field(default="local", description="Blob storage backend")
    storage_local_path: str = Field(default="./data/uploads", description="Local storage directory")
    max_file_size_mb: int = Field(default=50, description="Maximum file size in MB")
    allowed_file_types: str = Field(
        default=".txt,.png,.jpg,.jpeg,.pdf,.json,.doc,.docx,.csv,.xml,.mp3,.mp4,.wav,.zip",
        description="Allowed file extensions (comma-separated)"
    )

    # S3 Configuration
    s3_bucket_name: Optional[str] = Field(
        default=None,
        description="S3 bucket name (required when STORAGE_PROVIDER=s3)"
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="S3/MinIO endpoint URL (optional, for MinIO/LocalStack)"
    )
    s3_region: Optional[str] = Field(default="us-east-1", description="AWS region")

    # Custody policy
    stale_window_days: int = Field(default=30, ge=1, description="Days without progress before an item is stale")
    retention_window_days: int = Field(default=730, ge=1, description="Default retention before destruction")
    retention_windows_by_type: Dict[EvidenceType, int] = Field(
        default_factory=dict,
        description="Per-type retention overrides in days, e.g. {\"biological\": 3650}"
    )
    high_value_tags: List[str] = Field(
        default=["critical", "high-value", "weapon"],
        description="Tags that mark an item as critical"
    )
    allow_edit_after_seal: bool = Field(
        default=False,
        description="Allow type/description/tags/notes edits on sealed evidence"
    )
    qr_allocation_attempts: int = Field(default=5, ge=1, description="QR code allocation attempts")
    conflict_retry_attempts: int = Field(
        default=2, ge=1,
        description="Attempts for a mutation that hits a concurrent write (2 = retry once)"
    )
    closed_case_ids: List[str] = Field(
        default_factory=list,
        description="Closed cases known without a case-management integration"
    )

    # Pagination
    default_page_size: int = Field(default=50, description="Default page size")
    max_page_size: int = Field(default=100, description="Maximum page size")

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8090"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def max_file_size_bytes(self) -> int:
        """Convert max file size from MB to bytes"""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_extensions(self) -> List[str]:
        """Parse allowed file types into list"""
        return [ext.strip() for ext in self.allowed_file_types.split(",")]

    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            stale_window_days=self.stale_window_days,
            retention_window_days=self.retention_window_days,
            retention_windows_by_type=dict(self.retention_windows_by_type),
            high_value_tags=frozenset(tag.lower() for tag in self.high_value_tags),
        )


# Global settings instance
settings = Settings()
