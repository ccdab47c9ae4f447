from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    app_name: str = 'RMTL Report Documents'

    output_dir: Path = Field(default=Path('./reports'))

    # Relative logo references such as '/assets/icons/wzlogo.png' are joined onto this.
    asset_base_url: str = Field(
        default='http://localhost:4200/',
        validation_alias=AliasChoices('ASSET_BASE_URL', 'APP_BASE_URL', 'BASE_URI'),
    )
    # None means wait for as long as the server takes.
    logo_fetch_timeout_seconds: float | None = None

    # Branding
    org_name: str = 'MADHYA PRADESH PASCHIM KSHETRA VIDYUT VITARAN COMPANY LIMITED'
    org_footer_tag: str = 'M.P.P.K.V.V.CO. LTD., INDORE'
    default_lab_name: str = 'REMOTE METERING TESTING LABORATORY INDORE'
    default_lab_address: str = 'MPPKVVCL Near Conference Hall, Polo Ground, Indore (MP) 452003'
    default_lab_email: str = 'testinglabwzind@gmail.com'
    default_lab_phone: str = '0731-2997802'

    # PDF rendering
    pdf_font_name: str = 'Helvetica'
    pdf_bold_font_name: str = 'Helvetica-Bold'
    pdf_italic_font_name: str = 'Helvetica-Oblique'
    # Optional TrueType files registered under the names above (needed for glyphs such as ₹).
    pdf_font_path: Path | None = None
    pdf_bold_font_path: Path | None = None
    pdf_body_font_size: float = 9.0
    pdf_producer: str = 'RMTL Report Documents'

    # Space separated command used by print(); the PDF path is appended.
    print_command: str = 'lp'


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    return settings
