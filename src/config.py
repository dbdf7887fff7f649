"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    # Chrome/Chromium settings
    chrome_binary: str = "/usr/bin/chromium"
    chrome_user_data_base: str = "/tmp/chrome-profiles"
    chrome_headless: bool = False
    chrome_startup_timeout_seconds: float = 15.0
    chrome_shutdown_timeout_seconds: float = 5.0
    proxy_server: str | None = None
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Display settings (Xvfb)
    display_width: int = 1920
    display_height: int = 1080

    # DevTools settings
    devtools_port_base: int = 9222
    browser_launch_attempts: int = 3
    browser_launch_backoff: float = 2.0
    browser_launch_initial_delay: float = 1.0

    # Admission settings
    max_concurrent_jobs: int = 3
    user_cooldown_seconds: int = 60
    global_retry_after_seconds: int = 30
    allowed_requesters: list[str] = []

    # Document locators
    allowed_hosts: list[str] = ["docsend.com", "www.docsend.com"]

    # Gate settings
    viewer_email: str = ""
    auth_deadline_seconds: float = 120.0
    gate_settle_seconds: float = 3.0
    viewer_ready_timeout_seconds: float = 30.0
    otp_timeout_seconds: float = 60.0
    otp_poll_interval_seconds: float = 2.0
    navigation_timeout_seconds: float = 30.0

    # Capture settings
    max_pages: int = 300
    page_safety_ceiling: int = 50
    page_settle_seconds: float = 1.5
    capture_settle_seconds: float = 2.0

    # Document settings
    pdf_page_size: str = "A4"
    pdf_dpi: int = 150
    pdf_compression_quality: int = 90
    pdf_show_page_numbers: bool = False

    # Delivery settings
    delivery_size_limit_bytes: int = 50 * 1024 * 1024
    overflow_dir: str = "/tmp/gated-capture/overflow"
    artifact_retention_bytes: int = 200 * 1024 * 1024

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "GDC_"
        env_file = ".env"

    @property
    def page_ceiling(self) -> int:
        """Effective page ceiling applied by every pagination call site."""
        return max(1, min(self.max_pages, self.page_safety_ceiling))


settings = Settings()
