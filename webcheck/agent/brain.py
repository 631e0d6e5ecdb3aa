"""Agent brain: analysis, planning and success-criteria judgment.

The goal-directed executor only depends on the :class:`AgentBrain`
contract. :class:`KeywordBrain` works offline; :class:`AIAgentBrain`
delegates each judgment to Claude.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from webcheck.ai.client import AIClient
from webcheck.ai.prompts.analysis import (
    ANALYSIS_SYSTEM_PROMPT,
    PLANNING_SYSTEM_PROMPT,
    build_analysis_prompt,
    build_planning_prompt,
)
from webcheck.ai.prompts.evaluation import CRITERIA_SYSTEM_PROMPT, build_criteria_prompt
from webcheck.models.test_plan import AgentAction, GoalDescriptor

logger = logging.getLogger(__name__)

MAX_PLANNED_ACTIONS = 10

_SCRIPT_RE = re.compile(r"<(script|style|noscript)\b.*?</\1>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_INTERACTIVE_RE = re.compile(r"<(button|a|input|select|textarea)\b", re.IGNORECASE)


def page_text(snapshot: str) -> str:
    """Visible-ish text of an HTML snapshot, whitespace collapsed."""
    text = _SCRIPT_RE.sub(" ", snapshot)
    text = _TAG_RE.sub(" ", text)
    return " ".join(html.unescape(text).split())


class PageAnalysis(BaseModel):
    current_state: str = ""
    available_actions: list[str] = Field(default_factory=list)
    relevant_elements: list[str] = Field(default_factory=list)
    progress_assessment: str = ""


class CriterionVerdict(BaseModel):
    criterion: str
    met: bool = False
    reasoning: str = ""


class CriteriaCheck(BaseModel):
    """Pass/fail judgment over the whole criteria set."""

    verdicts: list[CriterionVerdict] = Field(default_factory=list)
    analysis: str = ""

    @property
    def satisfied(self) -> bool:
        # Partial satisfaction is not success
        return bool(self.verdicts) and all(v.met for v in self.verdicts)

    @property
    def met_criteria(self) -> list[str]:
        return [v.criterion for v in self.verdicts if v.met]

    @property
    def unmet_criteria(self) -> list[str]:
        return [v.criterion for v in self.verdicts if not v.met]

    def summary(self) -> dict:
        return {
            "success": self.satisfied,
            "met_criteria": self.met_criteria,
            "unmet_criteria": self.unmet_criteria,
            "analysis": self.analysis,
        }


class AgentBrain(ABC):
    """Contract for the judgment capability used by the goal-directed executor."""

    @abstractmethod
    async def analyze(self, snapshot: str, goal: GoalDescriptor) -> PageAnalysis:
        """Describe the current page with respect to the goal."""

    @abstractmethod
    async def plan(self, analysis: PageAnalysis, goal: GoalDescriptor) -> list[AgentAction]:
        """Return the ordered actions for one attempt."""

    @abstractmethod
    async def check_criteria(
        self, snapshot: str, criteria: list[str], screenshot_base64: Optional[str] = None,
    ) -> CriteriaCheck:
        """Judge every success criterion against the current page."""


class KeywordBrain(AgentBrain):
    """Offline brain.

    Analysis is structural, the plan only inspects the page, and a
    criterion counts as met when its text appears in the page text.
    """

    async def analyze(self, snapshot: str, goal: GoalDescriptor) -> PageAnalysis:
        found = [m.lower() for m in _INTERACTIVE_RE.findall(snapshot)]
        return PageAnalysis(
            current_state=f"Page loaded with {len(found)} interactive elements",
            available_actions=["click", "type", "navigate", "wait"],
            relevant_elements=sorted(set(found)),
            progress_assessment=f"Working towards goal: {goal.goal}",
        )

    async def plan(self, analysis: PageAnalysis, goal: GoalDescriptor) -> list[AgentAction]:
        return [
            AgentAction(type="analyze_page",
                        description="Analyze page structure and available elements"),
            AgentAction(type="take_screenshot",
                        description="Capture current state for analysis"),
        ]

    async def check_criteria(
        self, snapshot: str, criteria: list[str], screenshot_base64: Optional[str] = None,
    ) -> CriteriaCheck:
        text = page_text(snapshot).lower()
        verdicts = [
            CriterionVerdict(
                criterion=c,
                met=c.lower() in text,
                reasoning="Text found on page" if c.lower() in text else "Text not found on page",
            )
            for c in criteria
        ]
        return CriteriaCheck(
            verdicts=verdicts,
            analysis=f"Analyzed current state against {len(criteria)} success criteria",
        )


class AIAgentBrain(AgentBrain):
    """Brain backed by Claude. Blocking API calls run in a worker thread."""

    def __init__(self, ai_client: AIClient, max_actions: int = MAX_PLANNED_ACTIONS):
        self.ai_client = ai_client
        self.max_actions = max_actions

    async def analyze(self, snapshot: str, goal: GoalDescriptor) -> PageAnalysis:
        data = await asyncio.to_thread(
            self.ai_client.complete_json,
            ANALYSIS_SYSTEM_PROMPT,
            build_analysis_prompt(goal.goal, goal.context, snapshot, goal.start_url),
        )
        return PageAnalysis(
            current_state=str(data.get("current_state", "")),
            available_actions=[str(a) for a in data.get("available_actions") or []],
            relevant_elements=[str(e) for e in data.get("relevant_elements") or []],
            progress_assessment=str(data.get("progress_assessment", "")),
        )

    async def plan(self, analysis: PageAnalysis, goal: GoalDescriptor) -> list[AgentAction]:
        system_prompt = PLANNING_SYSTEM_PROMPT.replace("{max_actions}", str(self.max_actions))
        data = await asyncio.to_thread(
            self.ai_client.complete_json,
            system_prompt,
            build_planning_prompt(goal.goal, goal.context, goal.success_criteria,
                                  analysis.model_dump_json(indent=2), goal.start_url),
        )
        actions: list[AgentAction] = []
        for raw in data.get("actions") or []:
            if not isinstance(raw, dict) or not raw.get("type"):
                logger.warning("Ignoring malformed planned action: %r", raw)
                continue
            actions.append(AgentAction(
                type=str(raw["type"]),
                description=str(raw.get("description") or ""),
                params=raw.get("params") or {},
            ))
        if len(actions) > self.max_actions:
            logger.debug("Truncating plan from %d to %d actions", len(actions), self.max_actions)
        return actions[:self.max_actions]

    async def check_criteria(
        self, snapshot: str, criteria: list[str], screenshot_base64: Optional[str] = None,
    ) -> CriteriaCheck:
        data = await asyncio.to_thread(
            self.ai_client.complete_json,
            CRITERIA_SYSTEM_PROMPT,
            build_criteria_prompt(criteria, snapshot),
            screenshot_base64,
        )
        by_index: dict[int, dict] = {}
        for item in data.get("criteria") or []:
            try:
                by_index[int(item.get("index"))] = item
            except (AttributeError, TypeError, ValueError):
                logger.debug("Ignoring malformed verdict: %r", item)
        verdicts = []
        for i, criterion in enumerate(criteria, 1):
            item = by_index.get(i, {})
            # A criterion the model skipped counts as unmet
            verdicts.append(CriterionVerdict(
                criterion=criterion,
                met=item.get("met") is True,
                reasoning=str(item.get("reasoning") or "No verdict returned"),
            ))
        return CriteriaCheck(verdicts=verdicts, analysis=str(data.get("analysis", "")))
