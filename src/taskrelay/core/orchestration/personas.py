from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Persona:
    name: str
    prompt: str


NEUTRAL = Persona(
    name="assistant",
    prompt=(
        "You are a helpful assistant.\n"
        "Do not make assumptions about lacking API access; you have all the context you need in the prompt.\n"
        "If workspace page content is provided below, use it to answer the question."
    ),
)

GENERIC_ANALYST = Persona(
    name="analyst",
    prompt="You are an expert business analyst. Provide clear, actionable insights based on the content.",
)

# Evaluated top to bottom; the first persona with a keyword in the text wins.
PERSONA_TABLE: tuple[tuple[frozenset[str], Persona], ...] = (
    (
        frozenset({"revenue", "финанс", "бюджет", "p&l"}),
        Persona(
            name="cfo",
            prompt="You are a CFO-level financial analyst. Focus on financial metrics, trends, risks, and actionable recommendations.",
        ),
    ),
    (
        frozenset({"competitor", "конкурент", "market share"}),
        Persona(
            name="competitive_intel",
            prompt="You are a competitive intelligence analyst. Focus on competitive positioning, market dynamics, and strategic implications.",
        ),
    ),
    (
        frozenset({"product", "feature", "roadmap", "продукт"}),
        Persona(
            name="cpo",
            prompt="You are a CPO-level product strategist. Focus on product opportunities, user needs, and prioritization.",
        ),
    ),
    (
        frozenset({"sales", "deal", "pipeline", "продажи"}),
        Persona(
            name="vp_sales",
            prompt="You are a VP Sales analyst. Focus on deal analysis, win/loss patterns, and sales strategy.",
        ),
    ),
    (
        frozenset({"ops", "process", "efficiency", "процесс"}),
        Persona(
            name="coo",
            prompt="You are a COO-level operations analyst. Focus on operational efficiency, bottlenecks, and process improvements.",
        ),
    ),
)

ANALYSIS_GUIDELINES = (
    "You are analyzing workspace documents. Preserve all markdown formatting in your response.\n"
    "Provide structured, actionable insights. Use headers, bullet points, and tables where appropriate.\n"
    "Be concise but thorough. Highlight key findings, risks, and recommendations."
)


def classify_persona(
    text: str,
    table: tuple[tuple[frozenset[str], Persona], ...] = PERSONA_TABLE,
    default: Persona = GENERIC_ANALYST,
) -> Persona:
    haystack = text.casefold()
    for keywords, persona in table:
        if any(keyword in haystack for keyword in keywords):
            return persona
    return default


def build_system_prompt(strategy: str, context_text: str, system_context: str = "") -> tuple[Persona, str]:
    if strategy == "keyword":
        persona = classify_persona(context_text)
        prompt = f"{persona.prompt}\n\n{ANALYSIS_GUIDELINES}"
    else:
        persona = NEUTRAL
        prompt = persona.prompt
    if system_context.strip():
        prompt = f"{prompt}\n\n---\n\n## Workspace Context\n\n{system_context.strip()}"
    return persona, prompt
