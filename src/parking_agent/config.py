"""Configuration objects and helpers for the parking agent."""

from __future__ import annotations

import sys
from typing import Optional

from pydantic import Field, HttpUrl, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONTENT_SID = "HXb5b62575e6e4ff6129ad7c8efe1f983e"


def default_chrome_path() -> str:
    """Chrome executable used when attaching over the debugging protocol."""
    if sys.platform == "win32":
        return "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe"
    if sys.platform == "darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    return "/usr/bin/google-chrome"


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    base_url: HttpUrl = Field("https://reserve.altaparking.com", alias="PARKING_AGENT_BASE_URL")
    email: Optional[str] = Field(None, alias="EMAIL")
    password: Optional[SecretStr] = Field(None, alias="PASSWORD")

    window_width: int = Field(1000, alias="WINDOW_WIDTH")
    window_height: int = Field(1000, alias="WINDOW_HEIGHT")
    headless: bool = Field(False, alias="PARKING_AGENT_HEADLESS")
    devtools: bool = Field(False, alias="PARKING_AGENT_DEVTOOLS")
    attach_to_chrome: bool = Field(False, alias="PARKING_AGENT_ATTACH")
    chrome_path: str = Field(default_factory=default_chrome_path, alias="PARKING_AGENT_CHROME_PATH")
    debugging_port: int = Field(9222, alias="PARKING_AGENT_DEBUGGING_PORT")

    make_reservation: bool = Field(True, alias="PARKING_AGENT_MAKE_RESERVATION")
    poll_interval_seconds: float = Field(10.0, alias="PARKING_AGENT_POLL_INTERVAL_SECONDS")
    poll_deadline_seconds: Optional[float] = Field(None, alias="PARKING_AGENT_POLL_DEADLINE_SECONDS")
    cell_timeout_seconds: float = Field(5.0, alias="PARKING_AGENT_CELL_TIMEOUT_SECONDS")
    step_timeout_seconds: float = Field(10.0, alias="PARKING_AGENT_STEP_TIMEOUT_SECONDS")
    sms_wait_seconds: float = Field(300.0, alias="PARKING_AGENT_SMS_WAIT_SECONDS")

    twilio_account_sid: Optional[str] = Field(None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[SecretStr] = Field(None, alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: Optional[str] = Field(None, alias="TWILIO_FROM_NUMBER")
    twilio_to_number: Optional[str] = Field(None, alias="TWILIO_TO_NUMBER")
    twilio_content_sid: str = Field(DEFAULT_CONTENT_SID, alias="TWILIO_CONTENT_SID")

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("poll_interval_seconds", "cell_timeout_seconds", "step_timeout_seconds", "sms_wait_seconds")
    @classmethod
    def non_negative(cls, value: float) -> float:
        """Reject negative waits."""
        if value < 0:
            raise ValueError("durations must not be negative")
        return value

    @property
    def resort_base_url(self) -> str:
        """Base URL without a trailing slash."""
        return str(self.base_url).rstrip("/")

    @property
    def twilio_configured(self) -> bool:
        """Whether enough Twilio settings are present to send a text."""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_from_number
            and self.twilio_to_number
        )

    @property
    def twilio_messages_endpoint(self) -> str:
        """Twilio Messages API endpoint for the configured account."""
        return f"https://api.twilio.com/2010-04-01/Accounts/{self.twilio_account_sid}/Messages.json"
