"""Agent and methodology-level selection for an incoming chat message."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class EdenLevel(enum.StrEnum):
    EXPLORACION = "E - Exploración"
    DEFINICION = "D - Definición"
    ESTRUCTURACION = "E - Estructuración"
    NAVEGACION = "N - Navegación"
    ESCALAMIENTO = "E - Escalamiento"


# Level label for turns addressed to explicitly mentioned agents
SPECIFIC_CONSULTATION = "Consulta Específica"

DEFAULT_AGENT = "gpt-oss"
BUILD_AGENT = "claude-opus-4-5-20251101"

AVAILABLE_AGENTS: frozenset[str] = frozenset(
    {
        "gpt-oss",
        "eva_vpmarketing",
        "tita_vp_administrativo",
        "dany_tecnicocloud",
        "ethan_soporte",
        "vito_fullstack",
        "andu_mentora",
        "luna_inversionista",
        "liam_inversionista",
        "diego_inversionista",
        "milo_documentador",
        BUILD_AGENT,
    }
)

_MENTION_RE = re.compile(r"@([\w.-]+)")


class AgentSelection(BaseModel):
    """Routing decision sent to the client as ``moderation_info``."""

    agents: list[str]
    reasoning: str
    primary_agent: str
    eden_level: str
    deliverables: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True, slots=True)
class _KeywordRule:
    keywords: tuple[str, ...]
    level: EdenLevel
    reasoning: str
    deliverables: tuple[str, ...]
    build: bool = False


# Evaluated in order; the first rule with any keyword contained in the
# lower-cased message wins. "validar" also belongs to the exploration rule, so
# the market validation rule only matches on its other keywords.
_KEYWORD_RULES: tuple[_KeywordRule, ...] = (
    _KeywordRule(
        keywords=("validar", "idea", "problema", "dolor"),
        level=EdenLevel.EXPLORACION,
        reasoning="Validación de idea de negocio - Nivel 1 EDEN",
        deliverables=("DIAGNOSTICO_DOLOR.pdf", "SCORE_OPORTUNIDAD.pdf"),
    ),
    _KeywordRule(
        keywords=("diseñar", "solución", "producto", "ux"),
        level=EdenLevel.DEFINICION,
        reasoning="Diseño de solución - Nivel 2 EDEN",
        deliverables=("PROPUESTA_SOLUCION.pdf", "MATRIZ_DIFERENCIACION.pdf"),
    ),
    _KeywordRule(
        keywords=("plan", "negocio", "constituir", "legal"),
        level=EdenLevel.ESTRUCTURACION,
        reasoning="Plan de negocio y constitución - Nivel 3 EDEN",
        deliverables=("PLAN_NEGOCIO.pdf", "BUSINESS_MODEL_CANVAS.pdf"),
    ),
    _KeywordRule(
        keywords=(
            "mvp",
            "desarrollar",
            "código",
            "web",
            "landing",
            "sitio",
            "página",
            "html",
            "css",
            "frontend",
        ),
        level=EdenLevel.NAVEGACION,
        reasoning="Desarrollo de MVP - Nivel 4 EDEN",
        deliverables=("MVP_WEB_FUNCIONAL.zip", "DOCUMENTACION_TECNICA.pdf"),
        build=True,
    ),
    _KeywordRule(
        keywords=("mercado", "validar", "métricas", "feedback"),
        level=EdenLevel.ESCALAMIENTO,
        reasoning="Validación de mercado - Nivel 5 EDEN",
        deliverables=("INFORME_VALIDACION.pdf", "METRICAS_SATISFACCION.pdf"),
    ),
    _KeywordRule(
        keywords=("inversión", "crecer", "escalar", "financiero"),
        level=EdenLevel.ESCALAMIENTO,
        reasoning="Estrategia de crecimiento e inversión - Nivel 6 EDEN",
        deliverables=("PROYECCION_FINANCIERA.pdf", "PLAN_CAPTACION_INVERSION.pdf"),
    ),
    _KeywordRule(
        keywords=("lanzar", "lanzamiento", "producción", "operativo"),
        level=EdenLevel.ESCALAMIENTO,
        reasoning="Lanzamiento al mercado - Nivel 7 EDEN",
        deliverables=("STARTUP_ACTIVA.pdf", "PLAN_MARKETING.pdf"),
    ),
)


def extract_mentioned_agents(message: str) -> list[str]:
    """Return ``@name`` mentions in order of appearance, without the ``@``."""
    return [m.rstrip(".-") for m in _MENTION_RE.findall(message)]


def determine_agents_by_content(
    message: str,
    *,
    default_agent: str = DEFAULT_AGENT,
    build_agent: str = BUILD_AGENT,
) -> AgentSelection:
    """Apply the ordered keyword policy; falls back to a general consultation."""
    lowered = message.lower()
    for rule in _KEYWORD_RULES:
        if any(keyword in lowered for keyword in rule.keywords):
            agent = build_agent if rule.build else default_agent
            return AgentSelection(
                agents=[agent],
                reasoning=rule.reasoning,
                primary_agent=agent,
                eden_level=rule.level.value,
                deliverables=list(rule.deliverables),
            )

    return AgentSelection(
        agents=[default_agent],
        reasoning="Consulta general - Agente principal ADÁN",
        primary_agent=default_agent,
        eden_level=EdenLevel.EXPLORACION.value,
        deliverables=["RESPUESTA_GENERAL.pdf"],
    )


def select_agents(
    message: str,
    *,
    default_agent: str = DEFAULT_AGENT,
    build_agent: str = BUILD_AGENT,
    available_agents: frozenset[str] = AVAILABLE_AGENTS,
) -> AgentSelection:
    """Explicit mentions of known agents win over the keyword policy."""
    selected = [
        name for name in extract_mentioned_agents(message) if name in available_agents
    ]
    if selected:
        return AgentSelection(
            agents=selected,
            reasoning=(
                "Agentes seleccionados por menciones explícitas: " + ", ".join(selected)
            ),
            primary_agent=selected[0],
            eden_level=SPECIFIC_CONSULTATION,
            deliverables=["RESPUESTA_ESPECIFICA.pdf"],
        )
    return determine_agents_by_content(
        message, default_agent=default_agent, build_agent=build_agent
    )


def normalize_level(raw: str | None) -> EdenLevel:
    """Map stored level labels (e.g. "Nivel 4 - MVP Funcional") to a level.

    Unknown or missing labels default to exploration.
    """
    if not raw:
        return EdenLevel.EXPLORACION
    if "Navegación" in raw or "MVP" in raw or "Nivel 4" in raw:
        return EdenLevel.NAVEGACION
    if "Exploración" in raw or "Nivel 1" in raw:
        return EdenLevel.EXPLORACION
    if "Definición" in raw or "Nivel 2" in raw:
        return EdenLevel.DEFINICION
    if "Estructuración" in raw or "Nivel 3" in raw:
        return EdenLevel.ESTRUCTURACION
    if any(tag in raw for tag in ("Escalamiento", "Nivel 5", "Nivel 6", "Nivel 7")):
        return EdenLevel.ESCALAMIENTO
    return EdenLevel.EXPLORACION


def is_build_level(level: str | None) -> bool:
    """True for the phase whose output is application code instead of a PDF."""
    return normalize_level(level) is EdenLevel.NAVEGACION
