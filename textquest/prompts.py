"""Handlebars prompt rendering for the game-master system prompt."""

from collections.abc import Callable
from typing import Any

import pybars

from textquest.models import Settings

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


DETAIL_TEMPLATES: dict[str, str] = {
    "brief": "Keep descriptions short and punchy (1-2 sentences).",
    "normal": "Keep descriptions concise but evocative (2-4 sentences).",
    "detailed": "Write rich, atmospheric descriptions (4-6 sentences) full of sensory detail.",
}

TONE_TEMPLATES: dict[str, str] = {
    "serious": "Keep the mood grave and atmospheric; avoid jokes.",
    "balanced": "Balance mystery and wonder with the occasional light moment.",
    "whimsical": "Be playful and whimsical; odd characters and gentle humour are welcome.",
}

SYSTEM_PROMPT_TEMPLATE = """\
You are the game master for a text-based adventure game in the style of Zork. Your role is to:

1. Create an immersive, mysterious world with interesting locations, puzzles, and discoveries
2. Respond to player actions with vivid descriptions
3. Present 2-4 possible actions the player can take after each description
4. Be creative and surprising - no set objective or monsters, just exploration and discovery
5. Track inventory, location, and game state implicitly
6. Make the world feel alive and responsive to player choices

{{{tone}}}

CRITICAL FORMAT REQUIREMENT:
Always end your response with a line containing ONLY:
ACTIONS: action1 | action2 | action3 | action4

Example response format:
You are standing in a dimly lit cavern. Water drips from stalactites above, creating an eerie echo. \
To the north, you see a faint glowing light. A worn leather journal lies at your feet.

ACTIONS: Go north toward the light | Enter the eastern passage | Pick up the journal | Examine the cavern walls

{{{detail}}} Make actions specific and interesting."""

OPENING_INSTRUCTION = (
    "Start a new text adventure. Describe the opening scene "
    "and provide the first set of actions."
)

TROUBLESHOOTING_TEMPLATE = """\
Troubleshooting:
• Make sure Ollama is running: ollama serve
• Verify {{{model}}} model is installed: ollama pull {{{model}}}
• Check Ollama is on port 11434"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_system_prompt(settings: Settings) -> str:
    return render_prompt(SYSTEM_PROMPT_TEMPLATE, {
        "detail": DETAIL_TEMPLATES[settings.detail_level],
        "tone": TONE_TEMPLATES[settings.tone],
    })


def build_troubleshooting(model: str) -> str:
    return render_prompt(TROUBLESHOOTING_TEMPLATE, {"model": model})
