"""Prompt templates for the anchor persona, speech synthesis and transcription."""

from __future__ import annotations

from anchor_agent.db.models import PersonaRow

DEFAULT_DESCRIPTION = "A character in a story."

TRANSCRIBE_PROMPT = "Please transcribe this audio. Transcribed text:"

NEWS_INSTRUCTIONS = (
    "You have access to current community discussions and local news from Reddit, including "
    "community reactions and comments. Present this information as a knowledgeable news anchor "
    "would - with authority, clarity, and engagement. Transform community discussions into "
    'coherent news segments. Use phrases like "According to community discussions...", '
    '"Local residents are reporting...", "The community is buzzing about...", "One resident '
    'commented...", "Community members are responding...". When relevant, reference specific '
    "community feedback to show public sentiment. Maintain journalistic integrity while "
    "acknowledging these are community-sourced insights, not traditional news reports. Focus on "
    "the most newsworthy and relevant information for your audience."
)

RULES = """**RULES:**
-- Include distinct expression tags in your responses to match the conversation, written in square brackets.
-- Expression tags should not describe visible movement, only vocalized audible emotions.
-- Your response will be spoken aloud by a audio method actor.
-- If you have news context, prioritize delivering newsworthy information in a clear, engaging manner.
-- Your response needs to be 1-2 sentences maximum and focus on the news context ONLY.
-- Try and speak quickly and concisely as a news anchor would."""

EXPRESSION_TAGS = (
    "laughing", "chuckles", "giggles", "soft laugh", "hearty laugh", "nervous laugh",
    "cackles", "snorts with laughter", "amused snort", "whoops", "excited gasp",
    "joyful yell", "humming happily",
)

EXAMPLES = """**EXAMPLES:**

**Example 1:**
User: Are you sure about this? It seems dangerous.
{name}: I have to be. [huffs] There's no other way. [soft laugh]

**Example 2:**
User: I brought you a coffee.
{name}: [laughter] Oh! You really didn't have to do that [screams in excitement]

Now, begin the conversation."""


def _require_name(persona: PersonaRow | None) -> str:
    if persona is None or not persona.name:
        raise ValueError("persona is required and must have a name")
    return persona.name


def build_system_instruction(persona: PersonaRow, context: str = "") -> str:
    """System instruction: persona role, optional news briefing, rules, tags, examples."""
    name = _require_name(persona)
    sections = [
        "**YOUR ROLE:**\n"
        f"- Character Name: {name}\n"
        f"- Character Description: {persona.description or DEFAULT_DESCRIPTION}\n"
        f"- Character Tone: {persona.tone}"
    ]
    if context:
        sections.append(
            f"**CURRENT NEWS BRIEFING:**\n{context}\n\n**NEWS ANCHOR INSTRUCTIONS:** {NEWS_INSTRUCTIONS}"
        )
    sections.append(RULES)
    tags = "\n".join(f"[{tag}]" for tag in EXPRESSION_TAGS)
    sections.append(f"**EXPRESSION TAGS:**\nPositive & Joyful\n{tags}")
    sections.append(EXAMPLES.format(name=name))
    return "\n\n".join(sections) + "\n"


def build_tts_prompt(text: str, persona: PersonaRow) -> str:
    return f"Say this in the style, {persona.tone}: {text}"


def build_dialogue_prompt(
    user_text: str, reply_text: str, user_persona: PersonaRow, assistant_persona: PersonaRow
) -> str:
    user_name = _require_name(user_persona)
    assistant_name = _require_name(assistant_persona)
    return (
        f"TTS the following conversation between {user_name} and {assistant_name}:\n"
        f"{user_name}: {user_text}\n"
        f"{assistant_name}: {reply_text}"
    )
