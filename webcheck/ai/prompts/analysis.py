"""System prompts for page-state analysis and action planning."""

from typing import Optional

ANALYSIS_SYSTEM_PROMPT = """You are a QA agent looking at a web page in order to reach a testing goal.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{"current_state": "one sentence", "available_actions": ["click", "type"], "relevant_elements": ["css selectors of elements that matter for the goal"], "progress_assessment": "one sentence"}

Guidelines:
- Only list selectors that appear in the supplied HTML.
- Prefer ids, names, data-testid and aria attributes over positional selectors."""


PLANNING_SYSTEM_PROMPT = """You are a QA agent planning browser actions that move a web page toward a testing goal.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{"actions": [{"type": "click_element", "description": "why", "params": {"selector": "#submit"}}]}

Allowed action types and their params:
- analyze_page: {}
- take_screenshot: {}
- click_element: {"selector": "..."}
- type_text: {"selector": "...", "text": "..."}
- navigate_to: {"url": "..."}
- wait_for_element: {"selector": "...", "timeout": 10000}
- verify_success: {}

Guidelines:
- Plan at most {max_actions} actions, in the order they must run.
- Success criteria are re-checked after every action, so do not add padding actions.
- Use only selectors present in the analysis or the HTML."""


def build_analysis_prompt(goal: str, context: str, page_html: str,
                          url: Optional[str] = None) -> str:
    """Build the user message for the page analysis call."""
    return (
        f"## Goal\n\n{goal}\n\n"
        f"## Context\n\n{context or 'None'}\n\n"
        f"## Start URL\n\n{url or 'Unknown'}\n\n"
        f"## Page HTML (excerpt)\n\n{page_html[:12000]}\n\n"
        f"Return your analysis as a single JSON object."
    )


def build_planning_prompt(goal: str, context: str, criteria: list[str], analysis_json: str,
                          url: Optional[str] = None) -> str:
    """Build the user message for the action planning call."""
    criteria_text = "\n".join(f"- {c}" for c in criteria)
    return (
        f"## Goal\n\n{goal}\n\n"
        f"## Context\n\n{context or 'None'}\n\n"
        f"## Start URL\n\n{url or 'Unknown'}\n\n"
        f"## Success Criteria\n\n{criteria_text}\n\n"
        f"## Page Analysis\n\n{analysis_json}\n\n"
        f"Return the plan as a single JSON object."
    )
