"""Prompt catalog — one fixed instruction template per analysis action.

The plugin names an action (``contrast``, ``spelling``, …) on a
``design-data`` message; ``lookup`` maps it to the template sent to Claude.
Every template pins the output schema and the empty-result sentinel so the
extractor always has a JSON list to look for.
"""

from __future__ import annotations

from dataclasses import dataclass

from sidebot_bridge.analysis.extractor import ItemShape

EDGE_CASES_ACTION = "edge-cases"

_FIX_FIELDS = ("title", "description", "severity", "nodeId", "suggestion")


@dataclass(frozen=True)
class PromptTemplate:
    action: str
    label: str
    instruction: str
    fields: tuple[str, ...] = _FIX_FIELDS
    empty_sentinel: str = "[]"
    shape: ItemShape = ItemShape.OBJECTS

    def render(self) -> str:
        """Full instruction text: task, output schema, empty sentinel."""
        if self.shape is ItemShape.STRINGS:
            schema = 'a JSON array of strings, e.g. ["What happens when the list is empty?"]'
            field_rules = ""
        else:
            example = ", ".join(f'"{name}": "..."' for name in self.fields)
            schema = f"a JSON array of objects with exactly these fields: [{{{example}}}]"
            field_rules = (
                "Use the node ids from the design data for nodeId when one applies. "
                'severity is one of "high", "medium", "low". '
            )
        return (
            f"{self.instruction}\n\n"
            f"Respond with {schema}. "
            "Put the array in a ```json fenced code block. "
            f"{field_rules}"
            f"If you find nothing, respond with exactly {self.empty_sentinel}."
        )


_CATALOG: dict[str, PromptTemplate] = {
    t.action: t
    for t in (
        PromptTemplate(
            action="spelling",
            label="Text correctness",
            instruction=(
                "Review every text layer in the design data for spelling mistakes, grammar errors, "
                "inconsistent capitalisation and placeholder copy (lorem ipsum, TODO, xxx). "
                "Quote the exact original text in the description and give the corrected text as the suggestion."
            ),
            fields=("title", "description", "severity", "nodeId", "originalText", "suggestion"),
        ),
        PromptTemplate(
            action="spacing",
            label="Layout consistency",
            instruction=(
                "Review the layout for inconsistent spacing: uneven gaps between siblings, padding that "
                "differs between similar containers, and values that break a 4/8-point grid. "
                "State the measured values and the value they should be."
            ),
        ),
        PromptTemplate(
            action="alignment",
            label="Positional alignment",
            instruction=(
                "Review element positions for misalignment: edges or centres that are off by a few pixels, "
                "elements that should share a column or baseline but do not, and items outside their parent frame. "
                "Use the x/y/width/height values from the design data."
            ),
        ),
        PromptTemplate(
            action="contrast",
            label="Color contrast",
            instruction=(
                "Review text and background colours for WCAG 2.1 contrast problems. Estimate the contrast "
                "ratio for each text layer against the fill behind it and flag anything under 4.5:1 "
                "(3:1 for text 18px and larger). Include the ratio in the description."
            ),
            fields=("title", "description", "severity", "nodeId", "ratio", "suggestion"),
        ),
        PromptTemplate(
            action="consistency",
            label="Cross-element consistency",
            instruction=(
                "Review the design for inconsistencies between elements that should match: font sizes and "
                "families used for the same role, button styles, corner radii, icon sizes and colour values "
                "that are almost but not exactly equal."
            ),
        ),
        PromptTemplate(
            action=EDGE_CASES_ACTION,
            label="Edge case enumeration",
            instruction=(
                "Act as a senior product designer reviewing this screen. List the edge cases and states the "
                "design does not yet cover: empty, loading and error states, very long or missing text, "
                "permissions, offline use, first-run and unusual data. One short sentence per edge case."
            ),
            fields=(),
            shape=ItemShape.STRINGS,
        ),
    )
}


def lookup(action: str | None) -> PromptTemplate | None:
    """Return the template for *action*, or ``None`` for unknown/absent actions."""
    if not action:
        return None
    return _CATALOG.get(action)


def actions() -> list[str]:
    return list(_CATALOG)


ANALYSIS_SYSTEM_PROMPT = (
    "You are Sidebot, a meticulous design reviewer working inside Figma. "
    "You receive a JSON description of the selected frames and layers "
    "(ids, names, types, positions, sizes, text content, fills). "
    "Only report problems you can point to in that data. "
    "Always return your findings as the JSON array the task asks for."
)

CHAT_SYSTEM_PROMPT = (
    "You are Sidebot, a product design copilot living in a Figma plugin. "
    "You help designers review their work, reason about product goals and catch issues early. "
    "Be concise and concrete.\n\n"
    "When the user asks you to find problems or suggest changes, include them as a JSON array "
    "of fix objects in a ```json fenced code block at the end of your reply, using the fields "
    '"title", "description", "severity" ("high" | "medium" | "low"), "nodeId" and "suggestion". '
    "Use node ids exactly as they appear in the design context. "
    "For ordinary conversation, do not include any JSON."
)
