import re
from typing import Any, Dict, List

from .models import TRIAGE_LEVELS

# label -> pattern. Matching any of these forces an "emergency" triage
# regardless of what the model returned.
RED_FLAG_RULES = [
    ("Chest pain or pressure", re.compile(r"\bchest\s+(pain|pressure|tightness)\b|\bheart\s+attack\b", re.I)),
    ("Signs of stroke", re.compile(r"\b(face\s+droop\w*|slurred\s+speech|one[- ]sided\s+weakness|stroke)\b", re.I)),
    ("Severe breathing difficulty", re.compile(r"\b(can'?t|cannot|unable\s+to)\s+breathe\b|\bgasping\b|\bchoking\b", re.I)),
    ("Severe bleeding", re.compile(r"\b(severe|heavy|uncontrolled|won'?t\s+stop)\s+bleeding\b|\bcoughing\s+(up\s+)?blood\b", re.I)),
    ("Loss of consciousness", re.compile(r"\b(unconscious|passed\s+out|fainted|unresponsive|seizure)\b", re.I)),
    ("Possible anaphylaxis", re.compile(r"\b(anaphyla\w*|throat\s+(is\s+)?(closing|swelling)|swollen\s+(tongue|throat))\b", re.I)),
    ("Suicidal thoughts", re.compile(r"\b(suicid\w*|kill\s+myself|end\s+my\s+life)\b", re.I)),
]

# a match is ignored when one of these appears shortly before it in the
# same clause ("no chest pain", "never fainted")
NEGATION_CUES = {
    "no", "not", "never", "nor", "without", "deny", "denies", "denied",
    "don't", "doesn't", "didn't", "isn't", "wasn't",
}
NEGATION_WINDOW = 4
_CLAUSE_BREAK = re.compile(r"[.,;:!?\n]|\b(?:but|and)\b", re.I)

_STYLE = {
    "emergency": "error",
    "urgent": "warning",
    "see_soon": "warning",
    "self_care": "success",
    "insufficient_info": "info",
}


def normalize_triage_level(level: Any) -> Any:
    """'See Soon' / 'see-soon' -> 'see_soon'. Unknown labels are returned untouched."""
    if not isinstance(level, str):
        return level
    norm = re.sub(r"[\s\-]+", "_", level.strip().lower())
    return norm if norm in TRIAGE_LEVELS else level


def _negated(text: str, start: int) -> bool:
    clause = _CLAUSE_BREAK.split(text[:start])[-1]
    words = re.findall(r"[a-z']+", clause.lower())[-NEGATION_WINDOW:]
    return any(w in NEGATION_CUES for w in words)


def match_red_flags(text: str) -> List[str]:
    if not text:
        return []
    return [
        label
        for label, rx in RED_FLAG_RULES
        if any(not _negated(text, m.start()) for m in rx.finditer(text))
    ]


def _flag_text(flag: Any) -> str:
    if isinstance(flag, dict):
        return str(flag.get("flag") or flag.get("description") or "")
    return str(flag)


def enforce_red_flags(response: Dict[str, Any], text: str) -> Dict[str, Any]:
    matches = match_red_flags(text)
    if not matches:
        return response

    flags = list(response.get("red_flag_matches") or [])
    seen = {_flag_text(f).lower() for f in flags}
    for label in matches:
        if label.lower() not in seen:
            flags.append(label)
    response["red_flag_matches"] = flags
    response["triage_level"] = "emergency"
    return response


def triage_style(level: str) -> str:
    return _STYLE.get(level, "info")


def triage_label(level: Any) -> str:
    return str(level or "unknown").replace("_", " ").upper()
