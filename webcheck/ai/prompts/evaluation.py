"""System prompts for judging success criteria."""

CRITERIA_SYSTEM_PROMPT = """You are a QA judge. Decide, for each success criterion, whether the current page state satisfies it.

You will receive the page HTML (and sometimes a screenshot) and a numbered list of criteria.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{"criteria": [{"index": 1, "met": true, "reasoning": "short explanation"}], "analysis": "one sentence overall"}

Guidelines:
- Return one entry per criterion, using its number as index.
- Be strict: mark a criterion met only when the page clearly shows it.
- Partial evidence means not met."""


def build_criteria_prompt(criteria: list[str], page_html: str) -> str:
    """Build the user message for a criteria check."""
    numbered = "\n".join(f"{i}. {c}" for i, c in enumerate(criteria, 1))
    return (
        f"## Success Criteria\n\n{numbered}\n\n"
        f"## Page HTML (excerpt)\n\n{page_html[:12000]}\n\n"
        f"Return your verdicts as a single JSON object."
    )
