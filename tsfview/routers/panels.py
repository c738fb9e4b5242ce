import json
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..core.errors import DataInconsistencyError, FetchError, InvalidWindowError
from ..models.schemas import (
    ForecastOption,
    MonthsResponse,
    PanelPayload,
    PanelRenderRequest,
    PanelRenderResponse,
)
from ..services.alignment import to_points
from ..services.composer import panel_variant, to_figure
from ..services.dashboard import MODEL_VIEWS, PanelPipeline, PanelSpec
from ..services.data_loader import QueryClient
from ..services.fetch import ResilientFetcher

router = APIRouter()

_VIEW_TITLES = {view: name for name, view in MODEL_VIEWS.items()}


@lru_cache(maxsize=1)
def get_query_client() -> QueryClient:
    return QueryClient(ResilientFetcher())


@router.get("/options", response_model=List[ForecastOption])
def options(view: Optional[str] = None, client: QueryClient = Depends(get_query_client)):
    try:
        return client.list_forecast_ids(view=view)
    except FetchError as e:
        raise HTTPException(502, str(e))


@router.get("/months", response_model=MonthsResponse)
def months(forecast_id: str, view: Optional[str] = None, client: QueryClient = Depends(get_query_client)):
    try:
        found = client.available_months(forecast_id, view=view)
    except FetchError as e:
        raise HTTPException(502, str(e))
    return MonthsResponse(forecast_id=forecast_id, months=found)


@router.post("/render", response_model=PanelRenderResponse)
def render(req: PanelRenderRequest, client: QueryClient = Depends(get_query_client)):
    if req.views:
        specs = []
        for view in req.views:
            title = _VIEW_TITLES.get(view, view)
            specs.append(PanelSpec(title, panel_variant(req.variant, label=title, aux_fields=req.aux_fields), view))
    else:
        specs = [PanelSpec(req.forecast_id, panel_variant(req.variant, aux_fields=req.aux_fields))]

    pipeline = PanelPipeline(client, preroll_days=req.preroll_days, x_mode=req.x_mode)
    try:
        results = pipeline.load(req.forecast_id, req.start_month, req.months_count, specs)
    except InvalidWindowError as e:
        raise HTTPException(400, str(e))
    except DataInconsistencyError as e:
        raise HTTPException(422, str(e))

    ok = [r for r in results if r.status == "ok"]
    errors = [r.message for r in results if r.status == "error"]
    if not ok:
        raise HTTPException(502, "; ".join(errors) or "no panels rendered")

    panels = [
        PanelPayload(
            title=r.title,
            points=to_points(r.frame),
            figure=json.loads(to_figure(r.panel).to_json()),
        )
        for r in ok
    ]
    return PanelRenderResponse(
        status="ok" if not errors else "partial: " + "; ".join(errors),
        y_domain=list(ok[0].panel.y_domain),
        panels=panels,
    )
