from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.config import DEFAULT_MONTHS, MAX_MONTHS, PREROLL_DAYS


class DailyPoint(BaseModel):
    model_config = ConfigDict(extra="allow")  # auxiliary model outputs

    date: str
    value: Optional[float] = None
    forecast_value: Optional[float] = None
    low: Optional[float] = None
    high: Optional[float] = None


class PanelRenderRequest(BaseModel):
    forecast_id: str
    start_month: str = Field(..., pattern=r"^\d{4}-\d{2}(-\d{2})?$")
    months_count: int = Field(DEFAULT_MONTHS, ge=1, le=MAX_MONTHS)
    preroll_days: int = Field(PREROLL_DAYS, ge=0)
    variant: str = Field("interval", pattern="^(interval|seasonal|model|compare)$")
    views: Optional[List[str]] = None  # one panel per view; None = default view
    aux_fields: List[str] = Field(default_factory=list)
    x_mode: str = Field("index", pattern="^(index|time)$")


class PanelPayload(BaseModel):
    title: str
    points: List[DailyPoint]
    figure: dict


class PanelRenderResponse(BaseModel):
    status: str
    y_domain: Optional[List[float]] = None
    panels: List[PanelPayload]


class ForecastOption(BaseModel):
    id: str
    name: str


class MonthsResponse(BaseModel):
    forecast_id: str
    months: List[str]
