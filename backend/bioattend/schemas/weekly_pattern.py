from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

WeekdayKey = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

WEEKDAY_KEYS: tuple[WeekdayKey, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class WeeklyPatternWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str = Field(pattern=r"^\d{2}:\d{2}$")
    end: str = Field(pattern=r"^\d{2}:\d{2}$")  # end <= start wraps past midnight


class WeeklyPatternDay(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    windows: list[WeeklyPatternWindow] = Field(min_length=1)
    required_minutes: int = Field(
        ge=0,
        validation_alias=AliasChoices("required_minutes", "requiredMinutes"),
    )
