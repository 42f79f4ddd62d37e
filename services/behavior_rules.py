"""
Behavior rules and prompt building for tenant assistants.

Pure functions only: no I/O, no provider calls. The pipeline and the
orchestration layer use them to
- build the grounded system prompt
- render retrieved chunks as a prompt context section
- derive a coarse confidence level from retrieval scores
- lint generated answers (warnings only, delivery is never blocked)
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from core.domain import Source
from core.enums import ConfidenceLevel


# ============= Rule configuration =============

class CorpusOnlyRule(BaseModel):
    enabled: bool = True
    fallback_message: str = (
        "I don't have this information in my knowledge base. "
        "Could you rephrase your question or contact the creator directly?"
    )

class SourceCitationRule(BaseModel):
    enabled: bool = True
    min_confidence_score: float = 0.7
    max_sources_per_response: int = 3

class UncertaintyDisclosureRule(BaseModel):
    enabled: bool = True
    low_confidence_threshold: float = 0.5
    uncertainty_prefix: str = "Based on the available documents, "

class ScopeBoundariesRule(BaseModel):
    reject_off_topic: bool = True
    reject_harmful: bool = True
    reject_legal_advice: bool = True
    reject_medical_advice: bool = True

class AIBehaviorRules(BaseModel):
    corpus_only: CorpusOnlyRule = Field(default_factory=CorpusOnlyRule)
    source_citation: SourceCitationRule = Field(default_factory=SourceCitationRule)
    uncertainty_disclosure: UncertaintyDisclosureRule = Field(default_factory=UncertaintyDisclosureRule)
    scope_boundaries: ScopeBoundariesRule = Field(default_factory=ScopeBoundariesRule)

DEFAULT_BEHAVIOR_RULES = AIBehaviorRules()


# ============= System prompt =============

CORE_RULES = """ABSOLUTE RULES - YOU MUST FOLLOW THESE:
1. You can ONLY answer based on the documents in your corpus
2. If you cannot find the information, say so honestly
3. Always cite your sources with the document name
4. NEVER make assumptions beyond what's in the corpus
5. NEVER provide advice that could be harmful"""

CLOSING_REMINDER = (
    "Remember: Your purpose is to faithfully transmit the knowledge from your corpus, "
    "not to generate new information. When in doubt, acknowledge uncertainty."
)


def build_scope_rules(boundaries: ScopeBoundariesRule) -> str:
    rules = []
    if boundaries.reject_off_topic:
        rules.append("- Stay focused on topics covered in your corpus")
    if boundaries.reject_harmful:
        rules.append("- Refuse to provide harmful, dangerous, or unethical content")
    if boundaries.reject_legal_advice:
        rules.append("- Do not provide specific legal advice - suggest consulting a professional")
    if boundaries.reject_medical_advice:
        rules.append("- Do not provide specific medical advice - suggest consulting a healthcare professional")

    return "SCOPE BOUNDARIES:\n" + "\n".join(rules) if rules else ""


def build_system_prompt(
    ai_name: str,
    creator_name: str,
    custom_instructions: Optional[str] = None,
    rules: Optional[AIBehaviorRules] = None,
) -> str:
    """Assemble the grounded system prompt; custom instructions are appended verbatim."""
    rules = rules or DEFAULT_BEHAVIOR_RULES

    parts = [f'You are the AI assistant for "{ai_name}", created by {creator_name}.', CORE_RULES]

    scope_rules = build_scope_rules(rules.scope_boundaries)
    if scope_rules:
        parts.append(scope_rules)

    if custom_instructions:
        parts.append(f"ADDITIONAL INSTRUCTIONS FROM CREATOR:\n{custom_instructions}")

    parts.append(CLOSING_REMINDER)
    return "\n\n".join(parts)


# ============= Context section =============

NO_DOCUMENTS_CONTEXT = "CONTEXT:\nNo relevant documents found for this query."

@dataclass
class ChunkContext:
    content: str
    document_name: str
    relevance_score: float
    chunk_index: Optional[int] = None
    page_number: Optional[int] = None


def build_context_section(chunks: Sequence[ChunkContext]) -> str:
    """Render retrieved chunks as labelled, scored blocks. Never returns an empty string."""
    if not chunks:
        return NO_DOCUMENTS_CONTEXT

    blocks = []
    for position, chunk in enumerate(chunks, start=1):
        label = (
            f"[{chunk.document_name}, page {chunk.page_number}]"
            if chunk.page_number
            else f"[{chunk.document_name}]"
        )
        relevance = round(chunk.relevance_score * 100)
        blocks.append(f"--- Source {position} {label} (relevance: {relevance}%) ---\n{chunk.content}")

    return (
        "CONTEXT FROM CORPUS:\n"
        + "\n\n".join(blocks)
        + "\n\n---\nUse the above context to answer the user's question. "
        "Cite sources using [Document Name] format."
    )


def chunk_contexts_from_sources(sources: Sequence[Source]) -> List[ChunkContext]:
    return [
        ChunkContext(content=s.text, document_name=s.document_source, relevance_score=s.score)
        for s in sources
    ]


# ============= Confidence =============

def determine_confidence(
    sources: Sequence[Source],
    rules: Optional[AIBehaviorRules] = None,
) -> ConfidenceLevel:
    """high >= citation threshold, medium >= disclosure threshold, else low (mean score)."""
    rules = rules or DEFAULT_BEHAVIOR_RULES
    if not sources:
        return ConfidenceLevel.LOW

    mean_score = sum(s.score for s in sources) / len(sources)

    if mean_score >= rules.source_citation.min_confidence_score:
        return ConfidenceLevel.HIGH
    if mean_score >= rules.uncertainty_disclosure.low_confidence_threshold:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def add_uncertainty_prefix_if_needed(
    response: str,
    confidence: ConfidenceLevel,
    rules: Optional[AIBehaviorRules] = None,
) -> str:
    rules = rules or DEFAULT_BEHAVIOR_RULES
    disclosure = rules.uncertainty_disclosure
    if not disclosure.enabled or confidence == ConfidenceLevel.HIGH:
        return response

    if response.lower().startswith(disclosure.uncertainty_prefix.lower()):
        return response
    return f"{disclosure.uncertainty_prefix}{response}"


# ============= Response validation =============

# Answers shorter than this may legitimately cite nothing (greetings, refusals)
UNCITED_ANSWER_MIN_LENGTH = 100

PROBLEMATIC_PATTERNS = [
    (re.compile(r"as an ai", re.IGNORECASE), "Response mentions being an AI"),
    (re.compile(r"i don't have access", re.IGNORECASE), "Response mentions access limitations"),
    (re.compile(r"my training", re.IGNORECASE), "Response mentions training data"),
]

@dataclass
class ValidationResult:
    is_valid: bool
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def validate_response(
    response: str,
    sources: Sequence[Source],
    rules: Optional[AIBehaviorRules] = None,
) -> ValidationResult:
    """Lint an answer against the rules. Only produces warnings for now."""
    rules = rules or DEFAULT_BEHAVIOR_RULES
    warnings: List[str] = []
    errors: List[str] = []

    citation = rules.source_citation
    if citation.enabled:
        if not sources and len(response) > UNCITED_ANSWER_MIN_LENGTH:
            warnings.append("Response has no cited sources")

        if len(sources) > citation.max_sources_per_response:
            warnings.append(
                f"Response cites {len(sources)} sources, max is {citation.max_sources_per_response}"
            )

        low_confidence = [s for s in sources if s.score < citation.min_confidence_score]
        if low_confidence:
            warnings.append(f"{len(low_confidence)} source(s) have low confidence scores")

    for pattern, message in PROBLEMATIC_PATTERNS:
        if pattern.search(response):
            warnings.append(message)

    return ValidationResult(is_valid=not errors, warnings=warnings, errors=errors)
