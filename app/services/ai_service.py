"""AI board generation.

A free-text project description is turned into a board with the same shape
as the empty-board template (title, groups, tasks). The language model is
asked for JSON; whatever comes back is normalized through the board
templates so ids and defaults are always present.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from anthropic import AsyncAnthropic
from anthropic.types import Message

from app.core.config import Settings, get_settings
from app.domain.board import create_task, empty_board, empty_group
from app.services.errors import BoardGenerationError, ValidationError

logger = structlog.get_logger(__name__)

BoardGenerator = Callable[[str], Awaitable[dict[str, Any]]]

GROUP_COLORS = ("#579bfc", "#a25ddc", "#00c875", "#fdab3d", "#e2445c", "#66ccff")
TASK_STATUSES = ("Not Started", "Working on it", "Stuck", "Done")
TASK_PRIORITIES = ("Low", "Medium", "High", "Critical")

BOARD_PROMPT = """Create a project board for the following description.

Description: {description}

Return JSON with this exact structure:

{{
  "title": "string",
  "label": "string (singular noun for the board's items, e.g. Task, Lead, Bug)",
  "description": "string",
  "groups": [
    {{
      "title": "string",
      "tasks": [
        {{
          "title": "string",
          "description": "string",
          "status": "Not Started|Working on it|Stuck|Done",
          "priority": "Low|Medium|High|Critical"
        }}
      ]
    }}
  ]
}}

Rules:
1. Between 2 and 5 groups, each with 1 to 6 tasks
2. Keep titles short

Return ONLY valid JSON, no additional text."""


class AnthropicBoardGenerator:
    def __init__(self, settings: Settings, client: AsyncAnthropic | None = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.settings.anthropic_api_key)
        return self._client

    async def __call__(self, description: str) -> dict[str, Any]:
        response: Message = await self.client.messages.create(
            model=self.settings.ai_model,
            max_tokens=self.settings.ai_max_tokens,
            messages=[
                {"role": "user", "content": BOARD_PROMPT.format(description=description)}
            ],
        )
        if not response.content:
            raise BoardGenerationError("Empty response from board generation")

        block = response.content[0]
        content_text = block.text if hasattr(block, "text") else str(block)
        return parse_board_json(content_text)


def parse_board_json(content_text: str) -> dict[str, Any]:
    text = content_text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[len("json"):]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise BoardGenerationError("Board generation returned invalid JSON") from exc
    if not isinstance(parsed, dict):
        raise BoardGenerationError("Board generation returned a non-object")
    return parsed


def _pick(value: Any, allowed: tuple[str, ...]) -> str:
    return value if value in allowed else allowed[0]


def normalize_generated_board(raw: dict[str, Any]) -> dict[str, Any]:
    raw_groups = raw.get("groups")
    if not isinstance(raw_groups, list) or not raw_groups:
        raise BoardGenerationError("Generated board has no groups")

    label = raw.get("label") or "Item"
    board = empty_board(raw.get("title") or "Untitled board", label, None)
    if raw.get("description"):
        board["description"] = str(raw["description"])

    groups = []
    for index, raw_group in enumerate(raw_groups):
        if not isinstance(raw_group, dict):
            continue
        tasks = [
            create_task(
                str(raw_task.get("title") or f"{label} {task_index + 1}"),
                description=raw_task.get("description"),
                status=_pick(raw_task.get("status"), TASK_STATUSES),
                priority=_pick(raw_task.get("priority"), TASK_PRIORITIES),
            )
            for task_index, raw_task in enumerate(raw_group.get("tasks") or [])
            if isinstance(raw_task, dict)
        ]
        groups.append(
            empty_group(
                str(raw_group.get("title") or "Group Title"),
                {"backgroundColor": GROUP_COLORS[index % len(GROUP_COLORS)]},
                tasks,
            )
        )
    if not groups:
        raise BoardGenerationError("Generated board has no groups")

    board["groups"] = groups
    return board


class AiService:
    def __init__(self, generator: BoardGenerator | None = None) -> None:
        self.generator = generator or AnthropicBoardGenerator(get_settings())

    async def generate_board_from_description(self, description: str) -> dict[str, Any]:
        if not description or not description.strip():
            raise ValidationError("Board description is required")

        try:
            raw = await self.generator(description.strip())
        except BoardGenerationError:
            logger.error("ai.generate_board_failed", reason="invalid_output")
            raise
        except Exception as exc:
            logger.error(
                "ai.generate_board_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise BoardGenerationError("Board generation failed") from exc

        board = normalize_generated_board(raw)
        logger.info("ai.board_generated", groups=len(board["groups"]))
        return board
