from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Digit-only biometric IDs are left-padded to this length (0 disables padding)
    BIOMETRICS_TOKEN_PAD_LENGTH: int = 0

    # Grid-report ("Att. Log Report") detection
    GRID_HEADER_SCAN_ROWS: int = 20
    GRID_MIN_DAY_RUN: int = 20
    GRID_LABEL_ROW_TOLERANCE: int = 6
    GRID_LABEL_COL_TOLERANCE: int = 3
    GRID_ID_MIN_DIGITS: int = 5

    # Legacy layout: how far above a day header to look for "User ID:" / "Name:"
    LEGACY_LABEL_SCAN_ROWS: int = 8
    # How many cells to the right of a label its value may sit (merged cells)
    LABEL_VALUE_SCAN_COLS: int = 3

    MONTH_SCAN_ROWS_ABOVE: int = 15
    MONTH_SCAN_ROWS_BELOW: int = 5

    WARNING_SAMPLE_LIMIT: int = 10
    MAX_PATTERN_WINDOWS: int = 3


settings = Settings()
