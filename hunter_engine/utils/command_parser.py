"""Parse voice/chat transcripts into progression commands"""
import logging
import re
from typing import Optional

from hunter_engine.models.events import CommandIntent, EventKind, GameEvent, VoiceCommand
from hunter_engine.models.mission import ExerciseType

logger = logging.getLogger(__name__)


# (exercise, keyword pattern, unit), checked in order
EXERCISE_PATTERNS = [
    (ExerciseType.PUSHUPS, re.compile(r"flexi[oó]n|push[\s-]?ups?"), "reps"),
    (ExerciseType.SITUPS, re.compile(r"abdominal|sit[\s-]?ups?|crunch"), "reps"),
    (ExerciseType.SQUATS, re.compile(r"sentadilla|squats?"), "reps"),
    (ExerciseType.RUNNING, re.compile(r"corr[ií]|correr|kil[oó]metro|\bkm\b|\bran\b|\brun"), "km"),
]

WATER_PATTERN = re.compile(r"agua|beb[ií]|water|drank|drink|\bml\b")
NUTRITION_PATTERN = re.compile(r"comida|com[ií]\b|meal|\bate\b|\beat\b")
UNHEALTHY_PATTERN = re.compile(r"chatarra|basura|poco saludable|comida r[aá]pida|junk|unhealthy|fast food")
STATUS_PATTERN = re.compile(r"estado|progreso|nivel|status|progress|level")
MISSION_PATTERN = re.compile(r"misi[oó]n|mission")

SPANISH_PATTERN = re.compile(
    r"flexi[oó]n|abdominal|sentadilla|corr|kil[oó]metro|agua|beb|comida|com[ií]|estado|progreso|nivel|misi[oó]n"
)

NUMBER_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)")

DRINK_PATTERNS = [
    ("tea", re.compile(r"\bt[eé]\b|\btea\b")),
    ("coffee", re.compile(r"caf[eé]|coffee")),
    ("sports_drink", re.compile(r"isot[oó]nic|sports? drink")),
]

RESPONSES = {
    "exercise": {
        "en": "Logged {amount} {label}. Great work, hunter!",
        "es": "Registrados {amount} {label}. ¡Excelente trabajo, cazador!",
    },
    "running": {
        "en": "Logged {amount} km run. Hunter speed!",
        "es": "Registrados {amount} km de carrera. ¡Velocidad de cazador!",
    },
    "hydration": {
        "en": "Logged {amount} ml. Stay hydrated!",
        "es": "Registrados {amount} ml. ¡Mantén la hidratación!",
    },
    "nutrition": {
        "en": "Meal logged. Hunter nutrition!",
        "es": "Comida registrada. ¡Nutrición de cazador!",
    },
    "status": {
        "en": "Checking your status...",
        "es": "Consultando tu estado...",
    },
    "missions": {
        "en": "Checking your daily missions...",
        "es": "Consultando estado de misiones diarias...",
    },
    "unknown": {
        "en": "Command not recognized",
        "es": "Comando no reconocido",
    },
}

EXERCISE_LABELS = {
    ExerciseType.PUSHUPS: {"en": "push-ups", "es": "flexiones"},
    ExerciseType.SITUPS: {"en": "sit-ups", "es": "abdominales"},
    ExerciseType.SQUATS: {"en": "squats", "es": "sentadillas"},
}


def _extract_number(text: str) -> Optional[float]:
    match = NUMBER_PATTERN.search(text)
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def _format_amount(amount: float) -> str:
    return str(int(amount)) if amount == int(amount) else str(amount)


def detect_language(text: str) -> str:
    """'es' when the transcript uses Spanish keywords, else 'en'"""
    return "es" if SPANISH_PATTERN.search(text) else "en"


def detect_drink_type(text: str) -> str:
    for drink_type, pattern in DRINK_PATTERNS:
        if pattern.search(text):
            return drink_type
    return "water"


def parse_command(transcript: str) -> VoiceCommand:
    """
    Recognise a spoken or typed command

    Examples:
        "hice 20 flexiones"      -> exercise_count, pushups 20
        "ran 2.5 km"             -> exercise_count, running 2.5
        "drank 500 ml of water"  -> hydration_log, 500
        "status"                 -> status_check

    Returns:
        VoiceCommand; its event is the GameEvent to dispatch, or None for
        read-only and unrecognised intents
    """
    text = (transcript or "").strip().lower()
    lang = detect_language(text)

    for exercise, pattern, unit in EXERCISE_PATTERNS:
        if not pattern.search(text):
            continue
        amount = _extract_number(text)
        if amount is None or amount <= 0:
            break
        if exercise == ExerciseType.RUNNING:
            response = RESPONSES["running"][lang].format(amount=_format_amount(amount))
            parameters = {"exercise": exercise.value, "distance": amount}
        else:
            amount = float(int(amount))
            response = RESPONSES["exercise"][lang].format(
                amount=_format_amount(amount),
                label=EXERCISE_LABELS[exercise][lang]
            )
            parameters = {"exercise": exercise.value, "count": int(amount)}
        return VoiceCommand(
            transcript=transcript,
            intent=CommandIntent.EXERCISE_COUNT,
            parameters=parameters,
            response=response,
            event=GameEvent(kind=EventKind.VOICE, amount=amount, unit=unit, exercise_type=exercise),
        )
    else:
        if WATER_PATTERN.search(text):
            amount = _extract_number(text)
            if amount is not None and amount > 0:
                drink_type = detect_drink_type(text)
                return VoiceCommand(
                    transcript=transcript,
                    intent=CommandIntent.HYDRATION_LOG,
                    parameters={"amount": int(amount), "drink_type": drink_type},
                    response=RESPONSES["hydration"][lang].format(amount=int(amount)),
                    event=GameEvent(
                        kind=EventKind.HYDRATION,
                        amount=int(amount),
                        unit="ml",
                        exercise_type=ExerciseType.WATER,
                        metadata={"drink_type": drink_type},
                    ),
                )
        elif NUTRITION_PATTERN.search(text):
            is_healthy = not UNHEALTHY_PATTERN.search(text)
            return VoiceCommand(
                transcript=transcript,
                intent=CommandIntent.NUTRITION_LOG,
                parameters={"is_healthy": is_healthy},
                response=RESPONSES["nutrition"][lang],
                event=GameEvent(
                    kind=EventKind.NUTRITION,
                    amount=1,
                    unit="meal",
                    exercise_type=ExerciseType.NUTRITION,
                    metadata={"is_healthy": is_healthy},
                ),
            )
        elif MISSION_PATTERN.search(text):
            return VoiceCommand(
                transcript=transcript,
                intent=CommandIntent.MISSION_STATUS,
                response=RESPONSES["missions"][lang],
            )
        elif STATUS_PATTERN.search(text):
            return VoiceCommand(
                transcript=transcript,
                intent=CommandIntent.STATUS_CHECK,
                response=RESPONSES["status"][lang],
            )

    logger.debug(f"Unrecognized command: {transcript!r}")
    return VoiceCommand(transcript=transcript, response=RESPONSES["unknown"][lang])
