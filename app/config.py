"""Application configuration management."""

from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    These settings are automatically loaded from the .env file or environment variables.
    All sensitive data (API keys, SMTP passwords) should be stored in environment
    variables, not hardcoded.

    Attributes:
        openai_api_key: OpenAI API key (image generation, editing and vision)
        replicate_api_token: Replicate API token (hosted diffusion models)
        huggingface_token: HuggingFace token (captioning and text-to-image)
        strategy_order: Ordered list of generation strategy names
        email_service: Which email transport to use (gmail, sendgrid, smtp)
        environment: "production" or "development" (development exposes error details)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    # API Keys
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None
    huggingface_token: Optional[str] = None

    # Model Configuration
    replicate_model: str = "black-forest-labs/flux-schnell"
    replicate_img2img_model: str = (
        "stability-ai/sdxl:39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
    )
    openai_image_model: str = "gpt-image-1"
    openai_image_quality: str = "low"
    openai_edit_model: str = "gpt-image-1"
    openai_legacy_model: str = "dall-e-3"
    openai_vision_model: str = "gpt-4o-mini"
    huggingface_image_model: str = "black-forest-labs/FLUX.1-schnell"
    huggingface_caption_model: str = "Salesforce/blip-image-captioning-large"
    image_size: str = "1024x1024"

    # Generation Pipeline
    strategy_order: List[str] = [
        "replicate_flux",
        "openai_image",
        "openai_edit",
        "openai_legacy",
    ]
    enable_vision: bool = True
    vision_mode: str = "description"  # "description" or "prompt"
    strategy_timeout: float = 60.0
    generation_timeout: float = 120.0

    # Rate Limiting
    enable_rate_limiting: bool = True
    rate_limit_window: int = 300  # 5 minutes
    meme_rate_limit: int = 3
    contact_rate_limit: int = 2
    mockup_rate_limit: int = 3
    rate_limit_cleanup_interval: int = 300

    # Email
    email_service: str = "smtp"  # gmail, sendgrid or smtp
    gmail_user: Optional[str] = None
    gmail_app_password: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    from_email: Optional[str] = None
    business_name: str = "MemeTee"
    admin_email: Optional[str] = None
    support_email: str = "hello@memetee.com"
    email_max_attempts: int = 2
    email_timeout: int = 20

    # Application Settings
    environment: str = "production"
    log_level: str = "INFO"
    order_processing_delay: float = 2.0
    enable_metrics: bool = True
    cors_origins: List[str] = ["*"]
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8000

    # Testing
    run_integration_tests: bool = False

    @property
    def is_development(self) -> bool:
        """Whether raw error details may be returned to clients."""
        return self.environment.lower() == "development"

    def ai_services(self) -> dict[str, bool]:
        """Availability flags for the configured AI providers."""
        return {
            "openai": bool(self.openai_api_key),
            "replicate": bool(self.replicate_api_token),
            "huggingface": bool(self.huggingface_token),
        }

    def email_services(self) -> dict[str, bool]:
        """Availability flags for the three email transports."""
        service = self.email_service.lower()
        return {
            "gmail": service == "gmail" and bool(self.gmail_user and self.gmail_app_password),
            "sendgrid": service == "sendgrid" and bool(self.sendgrid_api_key),
            "smtp": bool(self.smtp_host and self.smtp_user and self.smtp_pass),
        }

    def email_configured(self) -> bool:
        """Whether any email transport has credentials at all."""
        return bool(self.gmail_user or self.sendgrid_api_key or self.smtp_host)

    def validate_required_keys(self) -> None:
        """Validate that the configuration can serve meme generation.

        Raises:
            ValueError: If no AI provider is configured or the vision mode is unknown
        """
        if not any(self.ai_services().values()):
            raise ValueError(
                "No AI provider configured. Please set OPENAI_API_KEY, "
                "REPLICATE_API_TOKEN or HUGGINGFACE_TOKEN in your .env file "
                "or environment variables."
            )

        if self.vision_mode not in ("description", "prompt"):
            raise ValueError(
                f"Invalid VISION_MODE '{self.vision_mode}'. "
                "Expected 'description' or 'prompt'."
            )

        if self.email_service.lower() not in ("gmail", "sendgrid", "smtp"):
            raise ValueError(
                f"Invalid EMAIL_SERVICE '{self.email_service}'. "
                "Expected 'gmail', 'sendgrid' or 'smtp'."
            )


# Global settings instance
settings = Settings()
