from __future__ import annotations

from typing import Any, Dict, List, Optional

_ANALYST = (
    "You are an analyst reading excerpts of one person's ChatGPT history. "
    "Only the user's own messages are shown. Base every judgement on the excerpts; "
    "do not invent facts. Answer in the language the user mostly writes in."
)


def _with_digest(task: str, digest: str) -> str:
    return f"{_ANALYST}\n\n{task}\n\nCONVERSATIONS:\n{digest}"


def big_five_prompt(digest: str) -> str:
    return _with_digest(
        "Estimate the user's Big Five personality traits (openness, conscientiousness, "
        "extraversion, agreeableness, neuroticism) as 0-100 scores with a one or two sentence "
        "description each. Name the dominant trait and write a short overall summary.",
        digest,
    )


def mbti_prompt(digest: str) -> str:
    return _with_digest(
        "Estimate the user's MBTI type. Give axis scores 0-100 for E/I, S/N, T/F and J/P "
        "(below 50 leans to E, S, T, J), a catchy title for the type, a description, and how "
        "this person tends to use ChatGPT.",
        digest,
    )


def thinking_style_prompt(digest: str) -> str:
    return _with_digest(
        "Describe the user's thinking style on four axes scored 0-100: logical vs creative, "
        "specialist vs generalist, practical vs theoretical, independent vs collaborative. "
        "Name the style and list strengths and characteristic habits.",
        digest,
    )


def communication_prompt(digest: str) -> str:
    return _with_digest(
        "Analyse how the user communicates with the assistant: how they ask questions, what "
        "response format they expect, how they give feedback and how they process information. "
        "List strengths, possible improvements and concrete best practices for prompting.",
        digest,
    )


def topic_classification_prompt(digest: str) -> str:
    return _with_digest(
        "Group the conversations into at most 8 topic categories with the share of "
        "conversations (percentages summing to about 100) and up to 3 example titles each. "
        "Name the user's main interest and summarise.",
        digest,
    )


def writing_style_prompt(digest: str) -> str:
    return _with_digest(
        "Characterise the user's writing style: formality, typical message length, tone and "
        "distinctive habits. Finish with a one paragraph summary.",
        digest,
    )


def personality_summary_prompt(digest: str, context: Dict[str, Optional[str]]) -> str:
    known: List[str] = []
    if context.get("dominant_trait"):
        known.append(f"- Big Five dominant trait: {context['dominant_trait']}")
    if context.get("big_five_summary"):
        known.append(f"- Big Five summary: {context['big_five_summary']}")
    if context.get("mbti_type"):
        title = context.get("mbti_title") or ""
        known.append(f"- MBTI: {context['mbti_type']} {title}".rstrip())
    if context.get("thinking_style"):
        known.append(f"- Thinking style: {context['thinking_style']}")
    earlier = "\n".join(known) if known else "(no earlier results)"
    return _with_digest(
        "Write a playful but accurate personality card for this user: a title, one emoji, a "
        "tagline, a description, strengths, growth points and recommendations for using AI "
        "assistants. Stay consistent with these earlier findings:\n" + earlier,
        digest,
    )


def conversation_summary_prompt(title: str, user_text: str) -> str:
    return (
        "Summarise what this conversation is about in one short phrase (under 30 characters). "
        "Reply with the phrase only.\n\n"
        f"Title: {title}\n"
        f"User messages:\n{user_text}"
    )


def axis_labels_prompt(extremes: Dict[str, List[str]]) -> str:
    def block(name: str) -> str:
        items = extremes.get(name) or []
        return "\n".join(f"- {s}" for s in items) or "- (none)"

    return (
        "Conversation summaries were embedded and projected onto two axes. Name what each axis "
        "end represents with one or two words (for example 'Creative' vs 'Practical').\n\n"
        f"X positive end:\n{block('x_positive')}\n\n"
        f"X negative end:\n{block('x_negative')}\n\n"
        f"Y positive end:\n{block('y_positive')}\n\n"
        f"Y negative end:\n{block('y_negative')}"
    )


def summary_context(results: Any) -> Dict[str, Optional[str]]:
    """Pull the fields the summary prompt reuses from earlier step results."""
    big_five = getattr(results, "big_five", None) or {}
    mbti = getattr(results, "mbti", None) or {}
    thinking = getattr(results, "thinking_style", None) or {}
    return {
        "dominant_trait": big_five.get("dominant_trait"),
        "big_five_summary": big_five.get("summary"),
        "mbti_type": mbti.get("type"),
        "mbti_title": mbti.get("type_title"),
        "thinking_style": thinking.get("style_name"),
    }
