"""
FastAPI server that exposes the lead dashboard reports over REST.
"""
from __future__ import annotations

import contextlib
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

# Load .env file explicitly before importing anything that needs config
project_root = Path(__file__).resolve().parent
env_path = project_root / ".env"
if env_path.exists():
    load_dotenv(env_path, override=True)
else:
    load_dotenv(override=False)

if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from leadgraph.graph import GraphQueryError, GraphService, GraphUnavailableError, InvalidFilterError
from leadgraph.graph.dashboard_service import LeadDashboardService, build_lead_filters, requires_apoc
from leadgraph.utils import load_config, setup_logging

logger = logging.getLogger(__name__)


def _load_app_config() -> Dict[str, Any]:
    config_path = os.getenv("LEADGRAPH_CONFIG", str(project_root / "config.yaml"))
    try:
        return load_config(config_path)
    except FileNotFoundError:
        logger.warning("[API] Config file %s not found; using environment defaults", config_path)
        return {}


app_config = _load_app_config()
setup_logging(app_config)

app = FastAPI(title="Lead Graph Dashboard API")

default_allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

allowed_origins_env = os.getenv("API_ALLOWED_ORIGINS")
if allowed_origins_env:
    allowed_origins = [origin.strip() for origin in allowed_origins_env.split(",") if origin.strip()]
else:
    allowed_origins = default_allowed_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Graph services (composition root)
graph_service = GraphService(app_config)
graph_dashboard_service = LeadDashboardService(app_config, graph_service=graph_service)


def _require_graph_dashboard() -> None:
    if not graph_dashboard_service.is_available():
        raise HTTPException(
            status_code=503,
            detail="Graph dashboard service is not available. Enable Neo4j in config.yaml.",
        )


@contextlib.contextmanager
def _graph_errors(operation: str) -> Iterator[None]:
    """Map service-layer failures onto HTTP status codes."""
    try:
        yield
    except GraphUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except GraphQueryError as exc:
        if requires_apoc(exc):
            logger.warning("[API] %s needs the APOC plugin: %s", operation, exc)
            raise HTTPException(
                status_code=501,
                detail="This view requires the APOC plugin to be installed in Neo4j.",
            ) from exc
        logger.error("[API] %s failed: %s", operation, exc)
        raise HTTPException(status_code=500, detail=f"Failed to {operation}") from exc
    except (InvalidFilterError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "service": "Lead Graph Dashboard API",
        "timestamp": datetime.now().isoformat(),
        "graph_available": graph_dashboard_service.is_available(),
    }


@app.get("/api/leads")
def list_leads(
    nome: Optional[str] = None,
    tag: Optional[str] = None,
    dor: Optional[str] = None,
    nivel_interesse: Optional[str] = Query(None, alias="nivelInteresse"),
    origem: Optional[str] = None,
    dt_criacao_start: Optional[str] = Query(None, alias="dtCriacaoStart"),
    dt_criacao_end: Optional[str] = Query(None, alias="dtCriacaoEnd"),
    dt_atualizacao_start: Optional[str] = Query(None, alias="dtAtualizacaoStart"),
    dt_atualizacao_end: Optional[str] = Query(None, alias="dtAtualizacaoEnd"),
    page: int = 1,
    limit: int = 10,
):
    """
    Paginated, filterable lead listing ordered by last update.
    """
    _require_graph_dashboard()
    with _graph_errors("fetch leads"):
        filters = build_lead_filters(
            nome=nome,
            tag=tag,
            dor=dor,
            nivel_interesse=nivel_interesse,
            origem=origem,
            dt_criacao_start=dt_criacao_start,
            dt_criacao_end=dt_criacao_end,
            dt_atualizacao_start=dt_atualizacao_start,
            dt_atualizacao_end=dt_atualizacao_end,
            page=page,
            limit=limit,
        )
        return graph_dashboard_service.list_leads(filters)


@app.get("/api/leads/{lead_id}")
def get_lead(lead_id: str):
    _require_graph_dashboard()
    with _graph_errors("fetch lead details"):
        lead = graph_dashboard_service.get_lead(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


@app.get("/api/leads/{lead_id}/interaction-events")
def get_lead_interaction_events(lead_id: str):
    _require_graph_dashboard()
    with _graph_errors("fetch interaction events"):
        return graph_dashboard_service.get_lead_interaction_events(lead_id)


@app.get("/api/leads/{lead_id}/chathistory")
def get_lead_chat_history(lead_id: str):
    """Chat turns for a lead, oldest first."""
    _require_graph_dashboard()
    with _graph_errors("fetch chat history"):
        return graph_dashboard_service.get_chat_history(lead_id)


@app.get("/api/leads/{lead_id}/planner-history")
def get_lead_planner_history(lead_id: str):
    _require_graph_dashboard()
    with _graph_errors("fetch planner history"):
        return graph_dashboard_service.get_planner_history(lead_id)


@app.get("/api/leads/{lead_id}/all-reflections")
def get_lead_reflections(lead_id: str):
    _require_graph_dashboard()
    with _graph_errors("fetch reflections"):
        return graph_dashboard_service.get_all_reflections(lead_id)


@app.get("/api/leads/{lead_id}/all-hypotheses")
def get_lead_hypotheses(lead_id: str):
    _require_graph_dashboard()
    with _graph_errors("fetch hypotheses"):
        return graph_dashboard_service.get_all_hypotheses(lead_id)


@app.get("/api/graph/overview-formatted")
def get_graph_overview(
    node_limit: int = Query(150, alias="nodeLimit"),
    lead_id: Optional[str] = Query(None, alias="leadId"),
):
    """
    Return the ``{nodes, edges}`` visualization graph, either global or
    centred on a single lead.
    """
    _require_graph_dashboard()
    with _graph_errors("build graph overview"):
        return graph_dashboard_service.get_graph_overview(node_limit=node_limit, lead_id=lead_id)


@app.get("/api/knowledgebase/stats")
def get_knowledgebase_stats():
    _require_graph_dashboard()
    with _graph_errors("fetch knowledge base stats"):
        return graph_dashboard_service.get_knowledgebase_stats()


@app.get("/api/knowledgebase/items/{node_type}")
def get_knowledgebase_items(node_type: str, page: int = 1, limit: int = 20):
    _require_graph_dashboard()
    with _graph_errors(f"fetch {node_type} items"):
        return graph_dashboard_service.get_knowledgebase_items(node_type, page=page, limit=limit)


@app.get("/api/stats/geral")
def get_general_stats():
    _require_graph_dashboard()
    with _graph_errors("fetch general stats"):
        return graph_dashboard_service.get_general_stats()


@app.get("/api/stats/dores")
def get_pain_distribution():
    _require_graph_dashboard()
    with _graph_errors("fetch pain distribution"):
        return graph_dashboard_service.get_pain_distribution()


@app.get("/api/stats/niveis-interesse")
def get_interest_levels():
    _require_graph_dashboard()
    with _graph_errors("fetch interest levels"):
        return graph_dashboard_service.get_interest_levels()


@app.get("/api/stats/geral-periodo")
def get_period_stats(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Lead totals plus leads added and converted inside a day-aligned period."""
    _require_graph_dashboard()
    with _graph_errors("fetch period stats"):
        return graph_dashboard_service.get_period_stats(start_date, end_date)


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Lead Graph Dashboard API...")
    logger.info("API will be available at http://localhost:8000")
    logger.info("API docs: http://localhost:8000/docs")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level="info"
    )
