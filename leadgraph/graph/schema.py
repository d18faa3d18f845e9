"""
Neo4j schema definitions shared across the graph module.
"""

from __future__ import annotations

from enum import Enum


class NodeLabels(str, Enum):
    """Canonical node labels used in the lead graph."""

    LEAD = "Lead"
    TAG = "Tag"
    DOR = "Dor"
    INTERESSE = "Interesse"
    SOLUCAO = "Solucao"
    MESSAGE = "Message"
    INTERACTION_EVENT = "InteractionEvent"
    PLANNER_HISTORY_EVENT = "PlannerHistoryEvent"
    REFLECTION = "Reflection"
    HYPOTHESIS = "Hypothesis"
    CONCEPTUAL_MEMORY = "ConceptualMemory"
    DOR_COMUM = "DorComum"
    SOLUCAO_OFERECIDA = "SolucaoOferecida"
    OBJECAO_COMUM = "ObjecaoComum"
    KNOWLEDGE_TOPIC = "KnowledgeTopic"
    SOCIAL_PROOF = "SocialProof"
    INDUSTRY = "Industry"


class RelationshipTypes(str, Enum):
    """Relationship types used between graph entities."""

    TEM_TAG = "TEM_TAG"
    TEM_DOR = "TEM_DOR"
    TEM_INTERESSE = "TEM_INTERESSE"
    DISCUTIU_SOLUCAO = "DISCUTIU_SOLUCAO"
    HAS_CONCEPTUAL_MEMORY = "HAS_CONCEPTUAL_MEMORY"
    HAS_PLANNER_HISTORY = "HAS_PLANNER_HISTORY"
    HAS_REFLECTION = "HAS_REFLECTION"
    GENERATED_HYPOTHESIS = "GENERATED_HYPOTHESIS"
    HAD_EVENT = "HAD_EVENT"
    INTERACTED_WITH = "INTERACTED_WITH"
    RESOLVE = "RESOLVE"
    PODE_GERAR = "PODE_GERAR"
    RELATES_TO_TOPIC = "RELATES_TO_TOPIC"


# Labels walked by the lead-centred subgraph overview.
LEAD_SUBGRAPH_LABELS = (
    NodeLabels.LEAD.value,
    NodeLabels.DOR.value,
    NodeLabels.SOLUCAO.value,
    NodeLabels.INTERESSE.value,
    NodeLabels.PLANNER_HISTORY_EVENT.value,
    NodeLabels.REFLECTION.value,
    NodeLabels.HYPOTHESIS.value,
    NodeLabels.MESSAGE.value,
)

MEETING_SCHEDULED = "agendado"
