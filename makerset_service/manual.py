"""
manual.py — Build Steps for Kit Manuals

Turns the free-text manual stored with a kit into numbered build steps and
back, generates generic steps for kits without a structured manual, and
renders the printable instruction sheet.

Parsing never raises: anything it cannot read is simply not a step.
"""

import logging
import re
from typing import Iterable, List, Optional

from .models import BuildStep

log = logging.getLogger(__name__)

MAX_STEPS = 15

# "step 1. Title", "Step 2 Title", "3. Title", "4 Title"
STEP_HEADER = re.compile(r"^(?:step\s+)?(\d+)\.?\s*(.+)$", re.IGNORECASE)

QUICK_STEPS = (
    ("Preparation", "Gather all required materials and tools. Ensure your workspace is clean and well-lit."),
    ("Assembly", "Follow the assembly process carefully. Take your time and double-check each connection."),
    ("Testing", "Test your completed project to ensure everything works correctly."),
    ("Cleanup", "Clean up your workspace and store materials properly."),
)

GENERIC_SAFETY = (
    "Always work in a well-ventilated area",
    "Wear appropriate safety equipment (safety glasses, gloves if needed)",
    "Keep small parts away from young children",
    "Ask an adult for help if you're unsure about any step",
)


def parse_build_steps(manual: Optional[str]) -> List[BuildStep]:
    """
    Extracts build steps from a manual text.

    A line matching STEP_HEADER opens a step numbered as written; following
    lines form its description. Lines before the first header are dropped,
    blank lines are skipped without closing the open step, and at most
    MAX_STEPS steps are returned. Step numbers are not renumbered here.

    Args:
        manual (str): Free text, may be empty or None.

    Returns:
        List[BuildStep]: Steps in document order, possibly empty.
    """
    if not manual:
        return []

    steps: List[BuildStep] = []
    current: Optional[BuildStep] = None

    for line in manual.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue

        match = STEP_HEADER.match(trimmed)
        if match:
            if current is not None:
                steps.append(current)
            current = BuildStep(step_number=int(match.group(1)), title=match.group(2))
        elif current is not None:
            if current.description:
                current.description += "\n" + trimmed
            else:
                current.description = trimmed

    if current is not None:
        steps.append(current)

    log.debug(f"[Manual] Parsed {len(steps)} steps.")
    return steps[:MAX_STEPS]


def generate_default_build_steps(tools: Iterable[dict] = (), parts: Iterable[dict] = ()) -> List[BuildStep]:
    """
    Generic steps for a kit whose manual has no recognizable structure.

    Tool setup and material organization are only included when the kit has
    tools or parts. Steps are numbered by their final position.
    """
    tools = list(tools)
    parts = list(parts)
    drafts = [(
        "Preparation",
        "Gather all required tools and materials. Ensure your workspace is clean and well-lit. "
        "Review all safety instructions before beginning.",
    )]
    if tools:
        names = ", ".join(str(tool.get("tool_name", "")) for tool in tools)
        drafts.append((
            "Tool Setup",
            f"Prepare your tools: {names}. Check that all tools are in good working condition.",
        ))
    if parts:
        names = ", ".join(f"{part.get('part_name', '')} ({part.get('quantity', 1)}x)" for part in parts)
        drafts.append((
            "Material Organization",
            f"Organize your materials: {names}. Verify you have all required components.",
        ))
    drafts.append((
        "Assembly",
        "Follow the assembly process carefully. Take your time and double-check each connection "
        "or component placement.",
    ))
    drafts.append((
        "Testing & Verification",
        "Test your completed project to ensure everything works correctly. Make any necessary adjustments.",
    ))
    return [
        BuildStep(step_number=index, title=title, description=description)
        for index, (title, description) in enumerate(drafts, start=1)
    ]


def steps_for_manual(manual: Optional[str], tools: Iterable[dict] = (), parts: Iterable[dict] = ()) -> List[BuildStep]:
    """Parsed steps of `manual`, or the generic steps when none are found."""
    steps = parse_build_steps(manual)
    if steps:
        return steps
    log.info("[Manual] No structured steps found, using generic steps.")
    return generate_default_build_steps(tools, parts)


def render_manual_text(steps: Iterable[BuildStep]) -> str:
    """Serializes steps into manual text that parse_build_steps reads back."""
    return "\n\n".join(
        f"step {step.step_number}. {step.title}\n\n{step.description}" for step in steps
    )


def generate_safety_instructions(tools: Iterable[dict] = (), parts: Iterable[dict] = ()) -> List[str]:
    """Tool and part safety notes first; generic advice only if there are none."""
    instructions = []
    for tool in tools:
        notes = (tool.get("safety_notes") or "").strip()
        if notes:
            instructions.append(f"Tool Safety - {tool.get('tool_name', '')}: {notes}")
    for part in parts:
        notes = (part.get("safety_notes") or "").strip()
        if notes:
            instructions.append(f"Part Safety - {part.get('part_name', '')}: {notes}")
    if not instructions:
        instructions.extend(GENERIC_SAFETY)
    return instructions


def render_instructions(set_name: str, steps: Iterable[BuildStep], safety: Iterable[str] = ()) -> str:
    """Plain-text instruction sheet for printing or download."""
    content = f"{set_name.upper()} - BUILD INSTRUCTIONS\n"
    content += "=" * 40 + "\n\n"

    safety = list(safety)
    if safety:
        content += "SAFETY INSTRUCTIONS\n"
        for note in safety:
            content += f"- {note}\n"
        content += "\n"

    steps = list(steps)
    if steps:
        content += "BUILD STEPS\n\n"
        for step in steps:
            content += f"STEP {step.step_number}: {step.title}\n"
            content += f"{step.description}\n\n"
    return content


class StepList:
    """
    Step authoring with automatic renumbering.

    After every edit the step numbers equal position + 1.
    """

    def __init__(self, steps: Iterable[BuildStep] = (), max_steps: int = MAX_STEPS):
        self.max_steps = max_steps
        self._steps = [step.model_copy() for step in steps]
        self._renumber()

    @property
    def steps(self) -> List[BuildStep]:
        return [step.model_copy() for step in self._steps]

    def __len__(self):
        return len(self._steps)

    def _renumber(self):
        for index, step in enumerate(self._steps, start=1):
            step.step_number = index

    def _check_room(self, count: int = 1):
        if len(self._steps) + count > self.max_steps:
            raise ValueError(f"A manual holds at most {self.max_steps} steps")

    def add(self, title: str, description: str = "", image_url: Optional[str] = None) -> BuildStep:
        if not title.strip():
            raise ValueError("Step title is required")
        self._check_room()
        step = BuildStep(step_number=len(self._steps) + 1, title=title, description=description,
                         image_url=image_url)
        self._steps.append(step)
        return step.model_copy()

    def update(self, index: int, title: str, description: str = "", image_url: Optional[str] = None):
        if not title.strip():
            raise ValueError("Step title is required")
        step = self._steps[index]
        step.title = title
        step.description = description
        step.image_url = image_url

    def delete(self, index: int):
        del self._steps[index]
        self._renumber()

    def move(self, index: int, direction: str):
        """Swaps the step at `index` with its neighbour; out-of-range moves are ignored."""
        if direction not in ("up", "down"):
            raise ValueError(f"Unknown direction: {direction}")
        target = index - 1 if direction == "up" else index + 1
        if target < 0 or target >= len(self._steps):
            return
        self._steps[index], self._steps[target] = self._steps[target], self._steps[index]
        self._renumber()

    def quick_add(self):
        """Appends the standard preparation/assembly/testing/cleanup steps."""
        self._check_room(len(QUICK_STEPS))
        for title, description in QUICK_STEPS:
            self._steps.append(BuildStep(step_number=len(self._steps) + 1, title=title, description=description))

    def to_text(self) -> str:
        return render_manual_text(self._steps)
