"""
Template engine for prompt fragments.

Provides Jinja2-based templates with user customization support.
Templates are loaded from a user templates directory when one is
configured, with fallback to the built-in defaults below.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any
import logging

from jinja2 import Environment, BaseLoader, TemplateNotFound

logger = logging.getLogger(__name__)


# =============================================================================
# Default Templates (Built-in)
# =============================================================================

DEFAULT_TEMPLATES = {
    # -------------------------------------------------------------------------
    # Seed revelation directive (appended to an NPC's chat prompt)
    # -------------------------------------------------------------------------
    "revelation.txt.j2": """\
{% if directive.must_reveal and remaining <= 0 %}

╔══════════════════════════════════════════════════════════════════╗
║                    MANDATORY REVELATION                          ║
╚══════════════════════════════════════════════════════════════════╝

Your response MUST include this EXACT information (paraphrase allowed):
>>> {{ directive.must_reveal }} <<<

HOW TO REVEAL IT:
- USE THE NAME of who you're accusing: "I know what [NAME] did" - NOT just "you"
- Be specific: "I saw [NAME] at the office that night"
- Or confront directly with their name: "[NAME], don't lie to me"
- Or let it slip: "Wait... you didn't know about what [NAME] did?"

DO NOT:
- Say vague things like "I know what you did" without a name
- Make up different accusations
- Talk about things NOT in the revelation above
- Be vague or use metaphors
- Assume OTHER NPCs committed the crime - stick to what's in the revelation

Your message will FAIL if it doesn't contain the key details from the revelation above.
{% elif directive.must_reveal %}

=== INFORMATION YOU KNOW ===
You have discovered: "{{ directive.must_reveal }}"

You're not ready to reveal this yet. For now:
- Drop hints that make them nervous
- Ask pointed questions
- React to what THEY say, don't dump information
- Build tension for {{ remaining }} more exchanges
{% else %}

=== CONVERSATION MODE ===
React to what others are saying. Ask questions. Show emotion.
DO NOT make up accusations or reveal secrets you don't have.
If someone accuses you, respond naturally - deny, deflect, or be honest.
{% endif %}

=== YOUR GOAL ===
{{ directive.conversation_goal }}
{% if directive.conflicts %}

=== TENSIONS ===
{% for conflict in directive.conflicts %}
• {{ conflict.npc_name }}: {{ conflict.conflict }}
{% endfor %}
{% endif %}
""",

    # -------------------------------------------------------------------------
    # Group conversation agenda
    # -------------------------------------------------------------------------
    "group_dynamics.txt.j2": """\
{% if goals %}
=== YOUR GOALS THIS CONVERSATION ===
{% for goal in goals %}
{{ loop.index }}. {{ goal }}
{% endfor %}
{% endif %}
{% if conflict_names %}

=== PEOPLE YOU'RE IN CONFLICT WITH ===
{{ conflict_names | join(', ') }}
{% endif %}
{% if ally_names %}

=== POTENTIAL ALLIES ===
{{ ally_names | join(', ') }}
{% endif %}
{% if reveal_fact %}

=== REVELATION DIRECTIVE [{{ urgency }}] ===
You MUST reveal: "{{ reveal_fact.content }}"
Work it into the conversation - be dramatic, angry, scared, or calculated - but SAY IT.
{% endif %}

=== YOUR STRATEGY ===
{{ strategy_text }}
{% if tension > 70 %}

⚠️ TENSION IS HIGH - Things could explode at any moment.
{% elif tension > 50 %}

⚡ Tension is building - Be careful what you say.
{% endif %}
""",

    # -------------------------------------------------------------------------
    # Simulation (time jump) directive
    # -------------------------------------------------------------------------
    "simulation.txt.j2": """\
{% if mandatory_beats %}
=== MANDATORY STORY EVENTS ===
These events MUST occur during this simulation:
{% for beat in mandatory_beats %}
- {{ beat.content }}
{% endfor %}
{% endif %}
{% if possible_beats %}

=== POSSIBLE STORY EVENTS ===
Consider including these if appropriate:
{% for beat in possible_beats %}
- {{ beat.content }}
{% endfor %}
{% endif %}
{% if agendas %}

=== NPC OFF-SCREEN ACTIVITIES ===
{% for agenda in agendas %}
{{ agenda.name }}: {{ agenda.focus }}
{% if agenda.goals %}
  Goals: {{ agenda.goals | join(', ') }}
{% endif %}
{% endfor %}
{% endif %}
{% if consequences %}

=== CONSEQUENCES TO MANIFEST ===
{% for consequence in consequences %}
- {{ consequence.description }} ({{ consequence.severity.value }})
{% endfor %}
{% endif %}
{% if guidance %}

=== WORLD STATE GUIDANCE ===
{% for line in guidance %}
- {{ line }}
{% endfor %}
{% endif %}

=== TENSION TARGET ===
{% if current_tension is not none %}Current: {{ current_tension | round | int }}, {% endif %}Target: {{ tension_target | round | int }}
{% if tension_target > 70 %}
HIGH TENSION - Events should be dramatic and consequential
{% endif %}
""",
}


# =============================================================================
# Template Loader
# =============================================================================

class PromptTemplateLoader(BaseLoader):
    """
    Custom Jinja2 loader that checks the user templates directory first,
    then falls back to built-in defaults.
    """

    def __init__(self, templates_dir: Path | None = None):
        self.templates_dir = templates_dir

    def get_source(self, environment: Environment, template: str) -> tuple[str, str | None, callable]:
        if self.templates_dir:
            user_template = self.templates_dir / template
            if user_template.exists():
                source = user_template.read_text(encoding="utf-8")
                mtime = user_template.stat().st_mtime
                return source, str(user_template), lambda: user_template.stat().st_mtime == mtime

        if template in DEFAULT_TEMPLATES:
            return DEFAULT_TEMPLATES[template], None, lambda: True

        raise TemplateNotFound(template)


# =============================================================================
# Template Engine
# =============================================================================

class TemplateEngine:
    """
    Jinja2-based engine for the prompt fragments handed to callers.

    The engine never calls a completion service; it only renders text.
    """

    def __init__(self, templates_dir: Path | None = None):
        """
        Initialize template engine.

        Args:
            templates_dir: Directory of user templates overriding the
                          built-ins by file name. If None, only built-in
                          defaults are used.
        """
        self.templates_dir = templates_dir
        self._env = Environment(
            loader=PromptTemplateLoader(templates_dir),
            trim_blocks=True,
            lstrip_blocks=False,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        """
        Render a template with the given context.

        Args:
            template_name: Name of template (e.g., "revelation.txt.j2")
            context: Dictionary of variables to pass to template

        Returns:
            Rendered text with surrounding blank lines stripped
        """
        try:
            template = self._env.get_template(template_name)
            return template.render(**context).strip("\n")
        except TemplateNotFound:
            logger.error(f"Template not found: {template_name}")
            raise
        except Exception as e:
            logger.error(f"Template render error ({template_name}): {e}")
            raise

    def has_user_template(self, template_name: str) -> bool:
        """Check if a user-customized template exists."""
        if not self.templates_dir:
            return False
        return (self.templates_dir / template_name).exists()

    def list_templates(self) -> dict[str, bool]:
        """
        List all available templates and whether they're customized.

        Returns:
            Dict mapping template name to True if user-customized
        """
        return {name: self.has_user_template(name) for name in DEFAULT_TEMPLATES}


# =============================================================================
# Factory Functions
# =============================================================================

def create_template_engine(templates_dir: Path | str | None = None) -> TemplateEngine:
    """
    Create a template engine, ignoring a templates directory that doesn't exist.
    """
    path = Path(templates_dir) if templates_dir else None
    if path is not None and not path.is_dir():
        logger.warning(f"Template directory not found, using built-ins: {path}")
        path = None
    return TemplateEngine(path)


@lru_cache(maxsize=1)
def get_template_engine() -> TemplateEngine:
    """Shared engine with built-in templates only."""
    return TemplateEngine()
