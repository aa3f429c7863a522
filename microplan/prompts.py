"""Prompt text for the micro-task planner."""

from typing import List, Optional

from .config import PromptConfig
from .schemas import Page

NO_CONTEXT_PLACEHOLDER = "(no web context provided)"

OUTPUT_SCHEMA = """{
  "microTasks": Array<{
    "text": string,
    "estimatedTimeMinutes": number,
    "priority": "high" | "medium" | "low",
    "dependsOn"?: number[]
  }>
}"""

PLANNER_PROMPT = """You are an expert project planner and researcher. Create a precise, actionable micro-task plan that reflects real-world best practices.

Primary task: "{task}"

Use the following web context (if any) to inform the plan:
{context}

Return ONLY valid JSON matching this TypeScript type:
{schema}

Guidelines:
- First do a quick mental model: define the concept, typical deliverables, and success criteria (implicit).
- Cover the end-to-end lifecycle: discovery/research, planning/specs, environment setup, core execution, quality (testing/accessibility), performance, security, documentation, and delivery/launch.
- If the task is technical (e.g., "build a website"), include essential best practices (e.g., responsive layout, accessibility/WCAG, SEO basics, analytics, performance budgets, version control, CI checks, deployment & rollback).
- Include 8-15 micro-tasks that are specific and outcome-driven.
- Estimate realistic durations (15-120 minutes each).
- Prefer parallelizable tasks when possible.
- Include dependencies by index (0-based) if a task requires another to be done first.
- Assume a single competent person.
- No commentary, no markdown - just JSON."""


def render_context(pages: List[Page], config: Optional[PromptConfig] = None) -> str:
    config = config or PromptConfig()
    blocks = [
        f"Source {idx}: {page.title} ({page.url})\n{page.text[: config.source_max_chars]}"
        for idx, page in enumerate(pages[: config.max_sources], start=1)
    ]
    return "\n\n".join(blocks)


def build_prompt(task: str, pages: List[Page], config: Optional[PromptConfig] = None) -> str:
    context = render_context(pages, config)
    return PLANNER_PROMPT.format(
        task=task,
        context=context or NO_CONTEXT_PLACEHOLDER,
        schema=OUTPUT_SCHEMA,
    )
