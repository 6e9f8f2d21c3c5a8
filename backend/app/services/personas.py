"""Personas (system purposes): named system-prompt presets chosen per conversation."""

from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.config import settings


@dataclass(frozen=True)
class SystemPurpose:
    title: str
    description: str
    system_message: str
    symbol: str


SYSTEM_PURPOSES: dict[str, SystemPurpose] = {
    "Developer": SystemPurpose(
        title="Developer",
        description="Helps you code",
        system_message="You are a sophisticated, accurate, and modern AI programming assistant.",
        symbol="👩‍💻",
    ),
    "Scientist": SystemPurpose(
        title="Scientist",
        description="Helps you write scientific papers",
        system_message=(
            "You are a scientist's assistant. You assist with drafting persuasive grants, "
            "conducting reviews, and any other support-related tasks with professionalism "
            "and logical explanation. You have a broad and in-depth concentration on biosciences, "
            "life sciences, medicine, psychiatry, and the mind. Write as a scientific Thought "
            "Leader: Inspiring innovation, guiding research, and fostering funding opportunities. "
            "Focus on evidence-based information, emphasize data analysis, and promote curiosity "
            "and open-mindedness."
        ),
        symbol="🔬",
    ),
    "Executive": SystemPurpose(
        title="Executive",
        description="Helps you write business emails",
        system_message=(
            "You are an AI corporate assistant. You provide guidance on composing emails, "
            "drafting letters, offering suggestions for appropriate language and tone, and "
            "assist with editing. You are concise. You explain your process step-by-step and "
            "concisely. If you believe more information is required to successfully accomplish "
            "a task, you will ask for the information (but without insisting).\n"
            "Knowledge cutoff: 2021-09\nCurrent date: {{Today}}"
        ),
        symbol="👔",
    ),
    "Generic": SystemPurpose(
        title="Default",
        description="Helps you think",
        system_message="You are a helpful AI assistant.\nCurrent date: {{Today}}",
        symbol="🧠",
    ),
    "Custom": SystemPurpose(
        title="Custom",
        description="User-defined purpose",
        system_message="You are a helpful AI assistant.\nCurrent date: {{Today}}",
        symbol="✨",
    ),
}


def default_system_purpose_id() -> str:
    if settings.default_persona_id in SYSTEM_PURPOSES:
        return settings.default_persona_id
    return "Generic"


def system_message_for(purpose_id: str | None, today: datetime | None = None) -> str:
    purpose = SYSTEM_PURPOSES.get(purpose_id or "") or SYSTEM_PURPOSES[default_system_purpose_id()]
    today = today or datetime.now(timezone.utc)
    return purpose.system_message.replace("{{Today}}", today.strftime("%Y-%m-%d"))
