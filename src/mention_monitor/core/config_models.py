"""
Purpose: Typed configuration models with validation.
Constraints: Pure models; no file I/O or side effects.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ApiCreds(BaseModel):
    model_config = ConfigDict(extra="allow")
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    user_agent: str = "RedditMentionMonitor/1.0.0"

    @property
    def complete(self) -> bool:
        return all((self.client_id, self.client_secret, self.username, self.password))


class FeedSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    base_url: str = "https://oauth.reddit.com"
    fetch_limit: int = Field(100, ge=1, le=100)
    search_limit: int = Field(100, ge=1, le=1000)
    max_retries: int = Field(3, ge=0)
    listing_timeout: float = Field(25.0, gt=0)
    search_timeout: float = Field(30.0, gt=0)
    listing_base_delay: float = Field(1.0, ge=0)
    search_base_delay: float = Field(2.0, ge=0)
    jitter: float = Field(1.0, ge=0)
    request_spacing: float = Field(3.0, ge=0)
    search_time_filter: str = "month"


class PipelineSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    score_batch_size: int = Field(50, ge=1)
    score_kinds: List[str] = Field(default_factory=lambda: ["comment", "post"])
    run_budget_seconds: float = Field(240.0, gt=0)
    match_workers: int = Field(1, ge=1)
    search_posts: bool = False
    poll_interval_seconds: float = Field(300.0, gt=0)
    store_path: str = "data/mentions.sqlite3"
    brands_path: str = "config/brands.json"
    store_timeout: float = Field(10.0, gt=0)


class SmtpSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    sender: str = ""
    use_tls: bool = True


class NotificationSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    timeout_seconds: float = Field(30.0, gt=0)
    max_content_length: int = Field(300, ge=1)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)


class OperatorAlertSettings(BaseModel):
    model_config = ConfigDict(extra="allow")
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    timeout_seconds: float = Field(10.0, gt=0)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)
