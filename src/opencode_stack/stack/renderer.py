"""Config templates for render-config components.

A template turns the current ComponentPlan and the static user settings
into a structured document. Rendering is deterministic: the same inputs
always produce byte-identical output.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from ..config import Settings
from .selection import ComponentPlan

TemplateBuilder = Callable[[ComponentPlan, Settings], dict[str, Any]]

LLM_BASE_URL = "http://localhost:11434/v1"
IMAGE_BASE_URL = "http://localhost:7860"


def build_opencode_config(plan: ComponentPlan, settings: Settings) -> dict[str, Any]:
    """Configuration document of the opencode tool."""
    return {
        "llm": {
            "provider": "openai",
            "api_key": "ollama-placeholder",
            "base_url": LLM_BASE_URL,
            "model": plan.language_model,
        },
        "image_generator": {
            "provider": "sd",
            "base_url": IMAGE_BASE_URL,
            "model": plan.image_model,
        },
        "features": {
            "code_interpreter": False,
            "vectorstore": False,
        },
        "user": {
            "name": settings.user_name,
            "email": settings.user_email,
        },
        "telemetry": {
            "enabled": False,
        },
        "theme": settings.theme,
        "editor": settings.editor,
        "project_defaults": {
            "language": settings.project_language,
            "workspace": settings.workspace,
        },
    }


TEMPLATES: dict[str, TemplateBuilder] = {
    "opencode-config": build_opencode_config,
}


def render(template: str, plan: ComponentPlan, settings: Settings) -> str:
    """Render a template to its serialized JSON text.

    Raises:
        KeyError: If the template id is unknown.
    """
    builder = TEMPLATES[template]
    return json.dumps(builder(plan, settings), indent=2, ensure_ascii=False) + "\n"
