"""
Dashboard-facing lead reports.

Each public method runs a fixed (or compiled) query through
:class:`GraphService` and shapes the rows with the projection layer. The
service owns no state beyond its injected collaborators, so one instance can
serve concurrent requests.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import re
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from ..config.models import DashboardSettings, ProjectionSettings
from .filters import (
    CollectSpec,
    CompiledQuery,
    DateRange,
    FilterSpec,
    LeadQuerySchema,
    QueryFilterCompiler,
)
from .projection import RecordProjector
from .schema import LEAD_SUBGRAPH_LABELS, MEETING_SCHEDULED, NodeLabels
from .service import GraphService, GraphUnavailableError
from .temporal import EPOCH, ONE_MILLISECOND, TemporalNormalizer, to_epoch_millis
from .visual import GraphProjectionBuilder

logger = logging.getLogger(__name__)

LEAD_LIST_COLLECTIONS = (
    CollectSpec(pattern="(l)-[:TEM_TAG]->(t:Tag)", expression="t.nome", name="tagNames"),
    CollectSpec(pattern="(l)-[:TEM_DOR]->(d:Dor)", expression="d.nome", name="painNames"),
)

LEAD_LIST_RETURN = """l {
    .idWhatsapp,
    .nome,
    .nomeDoNegocio,
    .tipoDeNegocio,
    .dtCriacao,
    .dtUltimaAtualizacao,
    .nivelDeInteresseReuniao,
    .ultimoResumoDaSituacao,
    .currentPlanName,
    .currentPlanStep,
    tags: tagNames,
    pains: painNames
} AS lead"""

LEAD_DETAIL_QUERY = """
MATCH (l:Lead {idWhatsapp: $leadId})
RETURN l {
    .*,
    id: l.idWhatsapp,
    name: l.nome,
    businessName: l.nomeDoNegocio,
    businessType: l.tipoDeNegocio,
    meetingInterest: l.nivelDeInteresseReuniao,
    lastSummary: l.ultimoResumoDaSituacao,
    lastInteraction: l.dtUltimaAtualizacao,
    activeHypotheses: coalesce(l.activeHypotheses, []),
    tags: coalesce(l.tags, []),
    pains: [(l)-[:TEM_DOR]->(d:Dor) | d { .name, .nome, .descricao }],
    interests: [(l)-[:TEM_INTERESSE]->(i:Interesse) | i { .name, .nome, .descricao }],
    discussedSolutions: [(l)-[:DISCUTIU_SOLUCAO]->(s:Solucao) | s { .name, .nome, .descricao }],
    conceptualMemories: [(l)-[:HAS_CONCEPTUAL_MEMORY]->(cm:ConceptualMemory) | cm { .*, id: elementId(cm) }],
    plannerHistorySummary: [(l)-[:HAS_PLANNER_HISTORY]->(ph:PlannerHistoryEvent) |
        ph { .planName, .stepName, .status, .timestamp, .details }],
    recentReflectionsSummary: [(l)-[:HAS_REFLECTION]->(refl:Reflection) |
        refl { .summary, .focusType, .timestamp }],
    recentHypothesesSummary: [(l)-[:GENERATED_HYPOTHESIS]->(hyp:Hypothesis) |
        hyp { .interpretation, .confidence, .timestamp }]
} AS lead
"""

LEAD_EVENTS_QUERY = """
MATCH (l:Lead {idWhatsapp: $leadId})-[:HAD_EVENT]->(e:InteractionEvent)
RETURN e.eventType AS type, e.eventTimestamp AS timestamp, e.details AS details, e.source AS source
ORDER BY e.eventTimestamp DESC
LIMIT $limit
"""

CHAT_HISTORY_QUERY = """
MATCH (l:Lead {idWhatsapp: $leadId})-[:INTERACTED_WITH]-(msg:Message)
RETURN msg.role AS role,
       msg.text AS text,
       msg.timestamp AS timestamp,
       msg.type AS messageType,
       msg.toolCallName AS toolCallName,
       msg.toolCallArgs AS toolCallArgs,
       msg.toolResponseContent AS toolResponseContent
ORDER BY msg.timestamp ASC
LIMIT $limit
"""

PLANNER_HISTORY_QUERY = """
MATCH (l:Lead {idWhatsapp: $leadId})-[:HAS_PLANNER_HISTORY]->(ph:PlannerHistoryEvent)
RETURN ph { .planName, .stepName, .status, .timestamp, .details, .retries, .objective, .guidanceGiven } AS historyEvent
ORDER BY ph.timestamp ASC
"""

REFLECTIONS_QUERY = """
MATCH (l:Lead {idWhatsapp: $leadId})-[:HAS_REFLECTION]->(r:Reflection)
RETURN r { .* } AS reflection
ORDER BY r.reflectionTimestamp DESC
LIMIT $limit
"""

HYPOTHESES_QUERY = """
MATCH (l:Lead {idWhatsapp: $leadId})-[:GENERATED_HYPOTHESIS]->(h:Hypothesis)
RETURN h { .* } AS hypothesis
ORDER BY h.hypothesisTimestamp DESC
LIMIT $limit
"""

PAIN_DISTRIBUTION_QUERY = """
MATCH (l:Lead)-[:TEM_DOR]->(d:Dor)
RETURN d.nome AS dor, count(DISTINCT l) AS qtd
ORDER BY qtd DESC, dor
"""

INTEREST_LEVELS_QUERY = """
MATCH (l:Lead)
RETURN l.nivelDeInteresseReuniao AS nivel, count(l) AS qtd
ORDER BY qtd DESC
"""

GRAPH_OVERVIEW_QUERY = """
MATCH (n)
OPTIONAL MATCH (n)-[r]-(m)
WITH n, r, m
LIMIT $limit
RETURN n AS node1, r AS relationship, m AS node2
"""

LEAD_SUBGRAPH_QUERY = """
MATCH (startNode:Lead {idWhatsapp: $leadId})
CALL apoc.path.subgraphAll(startNode, {maxLevel: 2, labelFilter: $labelFilter})
YIELD nodes, relationships
UNWIND nodes AS n
OPTIONAL MATCH (n)-[r]-(m) WHERE m IN nodes
RETURN DISTINCT n AS node1, r AS relationship, m AS node2
LIMIT $limit
"""

KNOWLEDGEBASE_COLLECTIONS: Dict[str, Tuple[CollectSpec, ...]] = {
    NodeLabels.SOLUCAO_OFERECIDA.value: (
        CollectSpec(pattern="(n)-[:RESOLVE]->(d:DorComum)", expression="d.name", name="resolvesPains"),
        CollectSpec(pattern="(n)-[:PODE_GERAR]->(o:ObjecaoComum)", expression="o.name", name="canGenerateObjections"),
        CollectSpec(pattern="(n)-[:RELATES_TO_TOPIC]->(t:KnowledgeTopic)", expression="t.name", name="relatedTopics"),
    ),
    NodeLabels.DOR_COMUM.value: (
        CollectSpec(pattern="(s:SolucaoOferecida)-[:RESOLVE]->(n)", expression="s.name", name="resolvedBySolutions"),
        CollectSpec(pattern="(n)-[:PODE_GERAR]->(o:ObjecaoComum)", expression="o.name", name="canGenerateObjections"),
    ),
}

KNOWLEDGEBASE_STAT_KEYS = {
    NodeLabels.DOR_COMUM.value: "commonPains",
    NodeLabels.SOLUCAO_OFERECIDA.value: "solutionsOffered",
    NodeLabels.OBJECAO_COMUM.value: "commonObjections",
    NodeLabels.KNOWLEDGE_TOPIC.value: "knowledgeTopics",
    NodeLabels.SOCIAL_PROOF.value: "socialProofs",
    NodeLabels.INDUSTRY.value: "industries",
}


INTENT_SOURCE = "MeaningSupervisor"
INTENT_TYPE = "IntentInterpretation"
INTENT_PREFIX = 'Hipótese de intenção: "'
_FOCUS_SUFFIX_RE = re.compile(r'" \(Foco sugerido: .*\)')
_FOCUS_RE = re.compile(r"Foco sugerido: (.*?)\)")
NOT_AVAILABLE = "N/A"


def _created_at_millis(hypothesis: Dict[str, Any]) -> float:
    try:
        return to_epoch_millis(hypothesis.get("createdAt")) or 0
    except (ArithmeticError, ValueError, TypeError):
        return 0


def latent_interpretations(hypotheses: Any, limit: int = 3) -> List[Dict[str, Any]]:
    """
    Newest intent interpretations recorded by the meaning supervisor.

    ``description`` reads like ``Hipótese de intenção: "<texto>" (Foco sugerido: <foco>)``;
    the quoted text and the suggested focus are split out of it.
    """
    candidates = [
        hypothesis
        for hypothesis in hypotheses or []
        if isinstance(hypothesis, dict)
        and hypothesis.get("source") == INTENT_SOURCE
        and hypothesis.get("type") == INTENT_TYPE
    ]
    candidates.sort(key=_created_at_millis, reverse=True)

    interpretations = []
    for hypothesis in candidates[:limit]:
        description = hypothesis.get("description")
        details = hypothesis.get("details") if isinstance(hypothesis.get("details"), dict) else {}
        if isinstance(description, str) and description:
            interpretation = _FOCUS_SUFFIX_RE.sub("", description.replace(INTENT_PREFIX, "", 1))
            focus_match = _FOCUS_RE.search(description)
            focus = focus_match.group(1) if focus_match else NOT_AVAILABLE
        else:
            interpretation = NOT_AVAILABLE
            focus = NOT_AVAILABLE
        interpretations.append(
            {
                "interpretation": interpretation,
                "confidenceScore": hypothesis.get("confidence"),
                "suggestedAgentFocus": focus,
                "potentialUserGoal": details.get("potentialUserGoal") or NOT_AVAILABLE,
                "emotionalToneHint": details.get("emotionalToneHint") or NOT_AVAILABLE,
                "timestamp": hypothesis.get("createdAt"),
            }
        )
    return interpretations


def chat_message(row: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a projected message row as a Gemini-style chat turn."""
    message: Dict[str, Any] = {
        "role": row.get("role"),
        "parts": [{"text": row.get("text")}],
        "timestamp": row.get("timestamp"),
        "messageType": row.get("messageType") or "text",
    }
    tool_name = row.get("toolCallName")
    if tool_name:
        message["toolCall"] = {"name": tool_name, "args": row.get("toolCallArgs")}
        if row.get("toolResponseContent"):
            message["toolResponse"] = {"name": tool_name, "content": row.get("toolResponseContent")}
            del message["parts"]
    return message


def requires_apoc(error: BaseException) -> bool:
    """True when a query failed because the APOC plugin is not installed."""
    message = str(error).lower()
    return "apoc" in message and ("unknown function" in message or "no procedure" in message)


def _parse_day(value: str) -> dt.date:
    try:
        return date_parser.isoparse(value.strip()).date()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def day_start_millis(value: str) -> int:
    day = _parse_day(value)
    start = dt.datetime(day.year, day.month, day.day, tzinfo=dt.timezone.utc)
    return (start - EPOCH) // ONE_MILLISECOND


def day_end_millis(value: str) -> int:
    """Last millisecond (23:59:59.999 UTC) of the given day."""
    return day_start_millis(value) + 86_400_000 - 1


def date_range_from_days(field: str, start: Optional[str], end: Optional[str]) -> Optional[DateRange]:
    if not start and not end:
        return None
    return DateRange(
        field=field,
        start=day_start_millis(start) if start else None,
        end=day_end_millis(end) if end else None,
    )


def build_lead_filters(
    *,
    nome: Optional[str] = None,
    tag: Optional[str] = None,
    dor: Optional[str] = None,
    nivel_interesse: Optional[str] = None,
    origem: Optional[str] = None,
    dt_criacao_start: Optional[str] = None,
    dt_criacao_end: Optional[str] = None,
    dt_atualizacao_start: Optional[str] = None,
    dt_atualizacao_end: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> FilterSpec:
    """Translate the lead-list query string into a :class:`FilterSpec`."""
    date_ranges = [
        date_range
        for date_range in (
            date_range_from_days("dtCriacao", dt_criacao_start, dt_criacao_end),
            date_range_from_days("dtUltimaAtualizacao", dt_atualizacao_start, dt_atualizacao_end),
        )
        if date_range is not None
    ]
    exact_matches = {}
    if nivel_interesse:
        exact_matches["nivelDeInteresseReuniao"] = nivel_interesse
    if origem:
        exact_matches["origemDoLead"] = origem
    return FilterSpec(
        text_match=nome or None,
        exact_matches=exact_matches,
        tag_name=tag or None,
        pain_name=dor or None,
        date_ranges=date_ranges,
        page=page,
        limit=limit,
    )


def _validate_pagination(page: Any, limit: Any) -> None:
    if not isinstance(page, int) or isinstance(page, bool) or page < 1:
        raise ValueError("page must be an integer >= 1")
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
        raise ValueError("limit must be an integer >= 1")


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


class LeadDashboardService:
    """High-level facade that exposes dashboard-ready lead reports."""

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        graph_service: Optional[GraphService] = None,
        projector: Optional[RecordProjector] = None,
        compiler: Optional[QueryFilterCompiler] = None,
    ):
        self.graph_service = graph_service or GraphService(config)
        self.projection_settings = projector.settings if projector else ProjectionSettings.from_config(config)
        self.settings = DashboardSettings.from_config(config)
        self.projector = projector or RecordProjector(
            self.projection_settings,
            TemporalNormalizer(self.projection_settings),
        )
        self.compiler = compiler or QueryFilterCompiler()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def is_available(self) -> bool:
        return self.graph_service.is_available()

    def list_leads(self, filters: Optional[FilterSpec] = None) -> Dict[str, Any]:
        filters = filters or FilterSpec()
        filters = replace(
            filters,
            page=1 if filters.page is None else filters.page,
            limit=self.settings.default_page_size if filters.limit is None else filters.limit,
        )
        _validate_pagination(filters.page, filters.limit)
        compiled = self.compiler.compile(filters)
        total = self._count(compiled)

        query = compiled.listing_query(
            LEAD_LIST_RETURN,
            collections=LEAD_LIST_COLLECTIONS,
            order_by="l.dtUltimaAtualizacao DESC",
        )
        rows = self._run(query, compiled.params)
        leads = [self._lead_summary(self.projector.project(row).get("lead") or {}) for row in rows]
        return {
            "data": leads,
            "page": filters.page,
            "limit": filters.limit,
            "totalItems": total,
            "totalPages": _total_pages(total, filters.limit),
        }

    def get_lead(self, lead_id: str) -> Optional[Dict[str, Any]]:
        rows = self._run(LEAD_DETAIL_QUERY, {"leadId": lead_id})
        if not rows:
            return None
        lead = self.projector.project(rows[0]).get("lead")
        if lead is None:
            return None
        lead["lastLatentInterpretations"] = latent_interpretations(lead.get("activeHypotheses"))
        return lead

    def get_lead_interaction_events(self, lead_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        rows = self._run(LEAD_EVENTS_QUERY, {"leadId": lead_id, "limit": int(limit)})
        return self.projector.project_many(rows)

    def get_chat_history(self, lead_id: str, limit: int = 200) -> List[Dict[str, Any]]:
        rows = self._run(CHAT_HISTORY_QUERY, {"leadId": lead_id, "limit": int(limit)})
        return [chat_message(row) for row in self.projector.project_many(rows)]

    def get_planner_history(self, lead_id: str) -> List[Dict[str, Any]]:
        rows = self._run(PLANNER_HISTORY_QUERY, {"leadId": lead_id})
        return [self.projector.project(row).get("historyEvent") or {} for row in rows]

    def get_all_reflections(self, lead_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self._run(REFLECTIONS_QUERY, {"leadId": lead_id, "limit": int(limit)})
        return [self.projector.project(row).get("reflection") or {} for row in rows]

    def get_all_hypotheses(self, lead_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        rows = self._run(HYPOTHESES_QUERY, {"leadId": lead_id, "limit": int(limit)})
        return [self.projector.project(row).get("hypothesis") or {} for row in rows]

    def get_graph_overview(self, *, node_limit: Optional[int] = None, lead_id: Optional[str] = None) -> Dict[str, Any]:
        limit = self.settings.graph_node_limit if node_limit is None else node_limit
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise ValueError("nodeLimit must be >= 1")
        if lead_id:
            label_filter = "|".join(f"+{label}" for label in LEAD_SUBGRAPH_LABELS)
            rows = self._run(LEAD_SUBGRAPH_QUERY, {"leadId": lead_id, "labelFilter": label_filter, "limit": limit})
        else:
            rows = self._run(GRAPH_OVERVIEW_QUERY, {"limit": limit})
        builder = GraphProjectionBuilder(self.projector, self.projection_settings)
        payload = builder.build(rows)
        logger.info(
            "[DASHBOARD] Graph overview built: %s nodes, %s edges from %s rows",
            len(payload["nodes"]),
            len(payload["edges"]),
            len(rows),
        )
        return payload

    def get_knowledgebase_stats(self) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        for node_type in self.settings.knowledgebase_types:
            rows = self._run(f"MATCH (n:{node_type}) RETURN count(n) AS count")
            count = int(rows[0].get("count") or 0) if rows else 0
            stats[KNOWLEDGEBASE_STAT_KEYS.get(node_type, node_type)] = count
        return stats

    def get_knowledgebase_items(self, node_type: str, *, page: int = 1, limit: Optional[int] = None) -> Dict[str, Any]:
        if node_type not in self.settings.knowledgebase_types:
            raise ValueError(f"Unknown knowledge base node type: {node_type}")
        limit = self.settings.knowledgebase_page_size if limit is None else limit
        _validate_pagination(page, limit)

        compiler = QueryFilterCompiler(LeadQuerySchema(label=node_type, alias="n"))
        compiled = compiler.compile(FilterSpec(page=page, limit=limit))
        collections = KNOWLEDGEBASE_COLLECTIONS.get(node_type, ())
        extra = "".join(f", {spec.name}: {spec.name}" for spec in collections)
        query = compiled.listing_query(
            f"n {{ .*, id: elementId(n){extra} }} AS item",
            collections=collections,
            order_by="n.name",
        )
        rows = self._run(query, compiled.params)
        items = [self.projector.project(row).get("item") or {} for row in rows]
        total = self._count(compiled)
        return {
            "data": items,
            "page": page,
            "limit": limit,
            "totalItems": total,
            "totalPages": _total_pages(total, limit),
        }

    def get_general_stats(self, today: Optional[dt.date] = None) -> Dict[str, int]:
        """Lead and conversion totals, plus what was added or converted today (UTC)."""
        today = today or dt.datetime.now(dt.timezone.utc).date()
        day_start = day_start_millis(today.isoformat())
        day_end = day_end_millis(today.isoformat())
        scheduled = {"nivelDeInteresseReuniao": MEETING_SCHEDULED}
        return {
            "totalLeads": self._count(self.compiler.compile(FilterSpec())),
            "totalConvertidos": self._count(self.compiler.compile(FilterSpec(exact_matches=scheduled))),
            "leadsAdicionadosHoje": self._count(
                self.compiler.compile(FilterSpec(date_ranges=[DateRange("dtCriacao", day_start, day_end)]))
            ),
            "leadsConvertidosHoje": self._count(
                self.compiler.compile(
                    FilterSpec(
                        exact_matches=scheduled,
                        date_ranges=[DateRange("dtUltimaAtualizacao", day_start, day_end)],
                    )
                )
            ),
        }

    def get_pain_distribution(self) -> List[Dict[str, Any]]:
        rows = self._run(PAIN_DISTRIBUTION_QUERY)
        return [{"nome": row.get("dor"), "quantidade": int(row.get("qtd") or 0)} for row in rows]

    def get_interest_levels(self) -> List[Dict[str, Any]]:
        rows = self._run(INTEREST_LEVELS_QUERY)
        return [
            {"nivel": row.get("nivel") or NOT_AVAILABLE, "quantidade": int(row.get("qtd") or 0)}
            for row in rows
        ]

    def get_period_stats(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict[str, Any]:
        start_millis = day_start_millis(start_date) if start_date else 0
        end_millis = day_end_millis(end_date) if end_date else int(time.time() * 1000)
        if start_date and end_date and start_millis > end_millis:
            raise ValueError("startDate must not be after endDate")

        scheduled = {"nivelDeInteresseReuniao": MEETING_SCHEDULED}
        return {
            "periodo": {"inicio": start_date or "Início dos tempos", "fim": end_date or "Agora"},
            "totalLeadsGeral": self._count(self.compiler.compile(FilterSpec())),
            "totalConvertidosGeral": self._count(self.compiler.compile(FilterSpec(exact_matches=scheduled))),
            "leadsAdicionadosNoPeriodo": self._count(
                self.compiler.compile(FilterSpec(date_ranges=[DateRange("dtCriacao", start_millis, end_millis)]))
            ),
            "leadsConvertidosNoPeriodo": self._count(
                self.compiler.compile(
                    FilterSpec(
                        exact_matches=scheduled,
                        date_ranges=[DateRange("dtUltimaAtualizacao", start_millis, end_millis)],
                    )
                )
            ),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        if not self.is_available():
            raise GraphUnavailableError("Neo4j graph is not configured")
        return self.graph_service.run_query(query, params or {})

    def _count(self, compiled: CompiledQuery) -> int:
        rows = self._run(compiled.count_query(), compiled.filter_params())
        if not rows:
            return 0
        return int(rows[0].get("total") or 0)

    @staticmethod
    def _lead_summary(lead: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": lead.get("idWhatsapp"),
            "whatsappId": lead.get("idWhatsapp"),
            "name": lead.get("nome"),
            "businessName": lead.get("nomeDoNegocio"),
            "businessType": lead.get("tipoDeNegocio"),
            "meetingInterest": lead.get("nivelDeInteresseReuniao"),
            "lastSummary": lead.get("ultimoResumoDaSituacao"),
            "currentPlan": lead.get("currentPlanName"),
            "currentStep": lead.get("currentPlanStep"),
            "lastInteraction": lead.get("dtUltimaAtualizacao"),
            "tags": [tag for tag in lead.get("tags") or [] if tag],
            "pains": [pain for pain in lead.get("pains") or [] if pain],
        }


__all__ = [
    "LeadDashboardService",
    "build_lead_filters",
    "chat_message",
    "date_range_from_days",
    "day_end_millis",
    "day_start_millis",
    "latent_interpretations",
    "requires_apoc",
]
