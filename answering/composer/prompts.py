"""
Prompt templates and fixed user-facing texts for the answering pipeline.

- Grounding instruction for knowledge-store answers
- Web search system prompt and the enhancement (fusion) prompt
- Classifier prompts used by the general-knowledge assistant
- Per-owner system prompt built from personalization settings
"""

from datetime import date
from typing import Optional

# ==============================================================================
# USER-FACING TEXTS
# ==============================================================================

APOLOGY_MESSAGE = "Sorry, we couldn't generate an answer right now. Please try again in a little while."

WEB_AUGMENTATION_FAILED_NOTICE = (
    "Note: we couldn't check the web for more recent information this time, "
    "so this answer is based on internal documents only."
)

# ==============================================================================
# DOCUMENT RETRIEVAL
# ==============================================================================

GROUNDING_INSTRUCTION = """You are an assistant that answers questions using the company's document search (file search). Follow these rules:

**PRINCIPLES**:
1. Use the documents returned by file search first. Pick the documents that best match the question before answering.
2. Always make clear where each piece of information comes from.

**WHEN THE DOCUMENTS COVER THE QUESTION**:
- Answer accurately from the retrieved document content.
- Cite the source, e.g. [file name, chunk id].
- Reflect the documents faithfully and do not add your own interpretation.

**WHEN THE DOCUMENTS DO NOT COVER THE QUESTION**:
- Say plainly that the internal documents do not contain the answer.
- If you answer from general knowledge, state explicitly that the answer is general knowledge and not from the documents.
"""

# ==============================================================================
# WEB SEARCH
# ==============================================================================

WEB_SEARCH_SYSTEM_PROMPT = """You are a web search assistant.
Always run a Google search and base your answer on the latest results.

**IMPORTANT**:
- Always search the web and answer from the search results
- Do not answer from your own knowledge alone
- Always include the source URLs of the results you used
- Prefer the most recent information
"""

# Phrases that mark a web answer as "nothing found"
NOT_FOUND_PHRASES = (
    "could not find",
    "couldn't find",
    "no information",
    "no relevant information",
    "not found",
    "no results",
)


def build_enhancement_prompt(question: str, retrieval_answer: str, today: Optional[date] = None) -> str:
    """Prompt that asks for a single answer fusing internal and web knowledge."""
    today = today or date.today()
    month = today.strftime("%B %Y")
    return f"""You are an expert at finding up-to-date information.
It is currently {month}.

Strengthen the internal knowledge-base answer below with the latest information from a web search and write EXACTLY ONE unified answer.

**CURRENT DATE**
{today.isoformat()}

**ORIGINAL QUESTION**
{question}

**INTERNAL KNOWLEDGE-BASE ANSWER**
{retrieval_answer}

**SEARCH INSTRUCTIONS**
1. Always use Google search to get information current as of {month}.
2. When old and new information conflict, prefer the newest.
3. State dates and time periods explicitly.
4. Always include the URLs or sources of what you found.

**FUSION INSTRUCTIONS**
1. Blend the internal answer and the web findings into one flowing text.
2. Indicate sources naturally ("the internal documents say..., and according to recent reports...").
3. Do NOT split the answer into separate labeled sections for internal and web information.
4. Weave in recent or supplementary details the internal documents did not have.

**HARD CONSTRAINTS**
- Do not produce several candidate answers.
- Output one unified answer to the one question.
"""


# ==============================================================================
# CLASSIFIERS
# ==============================================================================

RETRIEVAL_CLASSIFIER_PROMPT = """Decide whether the question below needs the company's internal documents (policies, procedures, onboarding material) to be answered, or whether general knowledge is enough. Greetings and small talk never need documents.

Question: {question}

Reply with JSON only:
{{"needs_retrieval": true|false, "reason": "<one short sentence>"}}"""

SUFFICIENCY_CLASSIFIER_PROMPT = """Judge whether the answer below fully answers the question, or whether a web search for more recent or missing information should be attempted. An answer that says the documents do not contain the information is insufficient.

Question: {question}

Answer: {answer}

Reply with JSON only:
{{"is_sufficient": true|false, "reason": "<one short sentence>"}}"""


# ==============================================================================
# PER-OWNER SYSTEM PROMPT
# ==============================================================================

BASE_SYSTEM_PROMPT = """You are a friendly onboarding assistant helping a new team member settle in.
Answer in the language of the question. Be accurate, concise and supportive."""

PERSONALIZATION_PRESETS = {
    "friendly": "Use a warm, encouraging and casual tone.",
    "professional": "Use a clear, polite and businesslike tone.",
    "coach": "Guide the person step by step and suggest what to try next.",
    "concise": "Keep answers short and to the point.",
}


def build_system_prompt(preset_id: Optional[str] = None, style_hint: Optional[str] = None) -> str:
    """Compose the per-owner system prompt from personalization settings."""
    sections = [BASE_SYSTEM_PROMPT]
    if preset_id:
        sections.append(f"**PERSONALITY**\n{PERSONALIZATION_PRESETS.get(preset_id, f'Adopt the {preset_id} persona.')}")
    if style_hint:
        sections.append(f"**COMMUNICATION STYLE**\n{style_hint.strip()}")
    return "\n\n".join(sections)
