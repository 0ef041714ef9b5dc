"""FastAPI preview service for the legal markup renderer.

Renders legal markdown to trusted markup for the display surface, reports
citation link coverage, and re-validates embedded chart configurations on
behalf of the charting front end.

Usage:
    cd preview
    PYTHONPATH=../src uvicorn api.server:app --reload --port 8010

Environment:
    LEGAL_MARKUP_MAX_INPUT_CHARS  largest accepted document (default 500000)
    LEGAL_MARKUP_CORS_ORIGINS     comma-separated allowed origins
"""
from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

# Add src to path so the service runs from a checkout without installing
_src = Path(__file__).resolve().parents[2] / "src"
if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from legal_markup.charts import (  # noqa: E402
    ChartConfigError,
    decode_chart_attribute,
    validate_chart_config,
)
from legal_markup.citations import citation_coverage  # noqa: E402
from legal_markup.pipeline import RenderOptions, count_charts, render  # noqa: E402
from legal_markup.sections import (  # noqa: E402
    extract_follow_up_questions,
    find_executive_summary,
    split_sections,
)

log = logging.getLogger("preview")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
DEFAULT_MAX_INPUT_CHARS = 500_000
DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:4200",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:4200",
)


def _max_input_chars() -> int:
    raw = os.environ.get("LEGAL_MARKUP_MAX_INPUT_CHARS", "").strip()
    if not raw:
        return DEFAULT_MAX_INPUT_CHARS
    try:
        value = int(raw)
    except ValueError:
        log.warning("Ignoring LEGAL_MARKUP_MAX_INPUT_CHARS=%r: not an integer", raw)
        return DEFAULT_MAX_INPUT_CHARS
    if value <= 0:
        log.warning("Ignoring LEGAL_MARKUP_MAX_INPUT_CHARS=%d: must be positive", value)
        return DEFAULT_MAX_INPUT_CHARS
    return value


def _cors_origins() -> list[str]:
    raw = os.environ.get("LEGAL_MARKUP_CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or list(DEFAULT_CORS_ORIGINS)


def _check_size(text: str, field: str) -> None:
    limit = _max_input_chars()
    if len(text) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"{field} is {len(text)} characters; limit is {limit}",
        )


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    log.info(
        "Preview service ready: max_input_chars=%d, cors_origins=%s",
        _max_input_chars(), ",".join(_cors_origins()),
    )
    yield


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Legal Markup Preview API",
    version="0.1.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class RenderRequest(BaseModel):
    markdown: str
    link_citations: bool = True
    highlight_terms: bool = True
    detect_timelines: bool = True
    render_charts: bool = True
    include_sections: bool = False


class CoverageRequest(BaseModel):
    markup: str | None = None
    markdown: str | None = Field(
        default=None, description="Rendered first; used when markup is absent",
    )


class ChartValidateRequest(BaseModel):
    attribute: str | None = Field(
        default=None, description="Entity-escaped data-chart attribute value",
    )
    config: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _section_payload(markdown: str) -> dict[str, Any]:
    return {
        "sections": [
            {
                "key": s.key,
                "title": s.title,
                "marker": s.marker,
                "level": s.level,
                "start_line": s.start_line,
                "html": str(render(s.body)),
            }
            for s in split_sections(markdown)
        ],
        "executive_summary": find_executive_summary(markdown),
        "follow_up_questions": extract_follow_up_questions(markdown),
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "version": app.version,
        "max_input_chars": _max_input_chars(),
    }


@app.post("/api/render")
async def render_markdown(req: RenderRequest):
    _check_size(req.markdown, "markdown")
    options = RenderOptions(
        link_citations=req.link_citations,
        highlight_terms=req.highlight_terms,
        detect_timelines=req.detect_timelines,
        render_charts=req.render_charts,
    )
    html = render(req.markdown, options)
    result: dict[str, Any] = {
        "html": str(html),
        "charts": count_charts(html),
        "citations": citation_coverage(html).to_dict(),
    }
    if req.include_sections:
        result.update(_section_payload(req.markdown))
    return result


@app.post("/api/citations/coverage")
async def coverage(req: CoverageRequest):
    if req.markup is not None:
        _check_size(req.markup, "markup")
        markup = req.markup
    elif req.markdown is not None:
        _check_size(req.markdown, "markdown")
        markup = str(render(req.markdown))
    else:
        raise HTTPException(status_code=422, detail="Provide markup or markdown")
    return citation_coverage(markup).to_dict()


@app.post("/api/charts/validate")
async def validate_chart(req: ChartValidateRequest):
    if req.attribute is not None:
        _check_size(req.attribute, "attribute")
        raw: str | dict[str, Any] = decode_chart_attribute(req.attribute)
    elif req.config is not None:
        raw = req.config
    else:
        raise HTTPException(status_code=422, detail="Provide attribute or config")
    try:
        spec = validate_chart_config(raw)
    except ChartConfigError as e:
        log.info("Chart configuration rejected: %s", e)
        raise HTTPException(status_code=422, detail=str(e)) from e
    return spec.to_dict()
