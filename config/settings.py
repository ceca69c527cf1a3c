"""
Centralized configuration for the Sales Room qualification service.

All settings are loaded from environment variables via .env file.
Settings are read once at process start; there is no hot reload.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


# Keyword vocabulary for the five configurable qualification criteria.
DEFAULT_CRITERIA_KEYWORDS: Dict[str, List[str]] = {
    "budget": ["budget", "pricing", "price", "cost", "invest", "roi", "spend", "affordable"],
    "timeline": ["timeline", "timeframe", "when", "soon", "asap", "urgent", "month", "quarter", "weeks"],
    "painPoint": [
        "pain", "problem", "challenge", "struggling", "difficult",
        "manual", "slow", "inefficient", "broken",
    ],
    "authority": [
        "decision", "approve", "choose", "decide", "manager",
        "director", "vp", "ceo", "founder", "lead",
    ],
    "need": ["need", "want", "require", "looking for", "searching", "solution", "help", "improve"],
}

DEFAULT_CRITERIA_REQUIRED: Dict[str, bool] = {
    "budget": False,
    "timeline": False,
    "painPoint": True,
    "authority": False,
    "need": True,
}


class Settings(BaseSettings):
    """Application settings."""

    # Brand
    brand_name: str = Field(default="SalesFusion", env="BRAND_NAME")

    # Chat backend
    chat_api_url: str = Field(default="http://localhost:3001", env="CHAT_API_URL")
    chat_model: str = Field(default="gpt-4o-mini", env="CHAT_MODEL")
    chat_api_key: Optional[str] = Field(default=None, env="CHAT_API_KEY")
    chat_timeout_seconds: float = Field(default=15.0, env="CHAT_TIMEOUT_SECONDS")

    # Qualification
    qualification_schema: str = Field(default="bant-default", env="QUALIFICATION_SCHEMA")
    qualification_scoring_strategy: str = Field(
        default="weighted_confidence", env="QUALIFICATION_SCORING_STRATEGY"
    )  # weighted_confidence | boolean_weight
    # Overrides the active schema's own score_threshold when set
    qualification_threshold: Optional[int] = Field(default=None, env="QUALIFICATION_THRESHOLD")
    hot_lead_threshold: int = Field(default=85, env="HOT_LEAD_THRESHOLD")
    warm_lead_threshold: int = Field(default=60, env="WARM_LEAD_THRESHOLD")
    significant_change_threshold: int = Field(default=15, env="SIGNIFICANT_CHANGE_THRESHOLD")
    notification_rearm_margin: int = Field(default=0, env="NOTIFICATION_REARM_MARGIN")
    qualification_window: int = Field(default=10, env="QUALIFICATION_WINDOW")

    # Criterion weights (points out of 100)
    criteria_budget_weight: int = Field(default=25, env="CRITERIA_BUDGET_WEIGHT")
    criteria_timeline_weight: int = Field(default=20, env="CRITERIA_TIMELINE_WEIGHT")
    criteria_pain_point_weight: int = Field(default=20, env="CRITERIA_PAIN_POINT_WEIGHT")
    criteria_authority_weight: int = Field(default=20, env="CRITERIA_AUTHORITY_WEIGHT")
    criteria_need_weight: int = Field(default=15, env="CRITERIA_NEED_WEIGHT")

    # Slack
    slack_webhook_url: Optional[str] = Field(default=None, env="SLACK_WEBHOOK_URL")
    slack_enabled: Optional[bool] = Field(default=None, env="SLACK_ENABLED")
    slack_notify_thresholds: str = Field(default="60,75,85", env="SLACK_NOTIFY_THRESHOLDS")

    # Session storage
    session_ttl_ms: int = Field(default=1000 * 60 * 60 * 24, env="SESSION_TTL_MS")
    session_quota_bytes: Optional[int] = Field(default=5 * 1024 * 1024, env="SESSION_QUOTA_BYTES")

    # Input security
    max_message_length: int = Field(default=500, env="MAX_MESSAGE_LENGTH")
    rate_limit_per_minute: int = Field(default=10, env="RATE_LIMIT_PER_MINUTE")

    # CRM
    crm_provider: str = Field(default="custom", env="CRM_PROVIDER")
    crm_api_key: Optional[str] = Field(default=None, env="CRM_API_KEY")
    crm_base_url: Optional[str] = Field(default="http://localhost:3001/api/crm", env="CRM_BASE_URL")
    crm_auto_sync: bool = Field(default=False, env="CRM_AUTO_SYNC")
    crm_sync_triggers: str = Field(default="qualified,handoff", env="CRM_SYNC_TRIGGERS")

    # Handoff business hours (24h HH:MM, team clock at a fixed UTC offset)
    business_hours_enabled: bool = Field(default=False, env="BUSINESS_HOURS_ENABLED")
    business_hours_start: str = Field(default="09:00", env="BUSINESS_HOURS_START")
    business_hours_end: str = Field(default="17:00", env="BUSINESS_HOURS_END")
    business_days: str = Field(default="mon,tue,wed,thu,fri", env="BUSINESS_DAYS")
    business_utc_offset_minutes: int = Field(default=0, env="BUSINESS_UTC_OFFSET_MINUTES")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_title: str = Field(default="Sales Room Qualification API", env="API_TITLE")
    api_version: str = Field(default="1.0.0", env="API_VERSION")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # Logging / debug
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")
    debug_api_enabled: bool = Field(default=False, env="DEBUG_API_ENABLED")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_slack_enabled(self) -> bool:
        if self.slack_enabled is None:
            return bool(self.slack_webhook_url)
        return self.slack_enabled and bool(self.slack_webhook_url)

    @property
    def notify_thresholds_list(self) -> List[int]:
        return sorted(
            int(part) for part in self.slack_notify_thresholds.split(",") if part.strip()
        )

    @property
    def crm_sync_triggers_list(self) -> List[str]:
        return [t.strip() for t in self.crm_sync_triggers.split(",") if t.strip()]

    @property
    def business_days_list(self) -> List[str]:
        return [d.strip() for d in self.business_days.split(",") if d.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def qualification_criteria(self) -> Dict[str, Dict[str, object]]:
        """The ``criteria.{budget,timeline,painPoint,authority,need}`` block."""
        weights = {
            "budget": self.criteria_budget_weight,
            "timeline": self.criteria_timeline_weight,
            "painPoint": self.criteria_pain_point_weight,
            "authority": self.criteria_authority_weight,
            "need": self.criteria_need_weight,
        }
        return {
            name: {
                "weight": weights[name],
                "required": DEFAULT_CRITERIA_REQUIRED[name],
                "keywords": list(DEFAULT_CRITERIA_KEYWORDS[name]),
            }
            for name in weights
        }

    @property
    def thresholds(self) -> Dict[str, int]:
        return {
            "hotLead": self.hot_lead_threshold,
            "warmLead": self.warm_lead_threshold,
            "significantChange": self.significant_change_threshold,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
