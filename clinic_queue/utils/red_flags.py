"""Red flag checklist and suggestions for triage."""

import re
from typing import Dict, List


# Checklist shown on the triage form, in display order
RED_FLAG_OPTIONS: List[str] = [
    "Chest pain",
    "Difficulty breathing",
    "Severe bleeding",
    "Altered consciousness",
    "Severe pain",
    "Suspected stroke",
    "Severe allergic reaction",
    "Head injury",
    "Abdominal pain",
    "Fever with confusion",
]

# Complaint patterns suggesting each checklist item
RED_FLAG_PATTERNS: Dict[str, List[str]] = {
    "Chest pain": [
        r"chest pain",
        r"crushing.*chest",
        r"pressure.*chest",
        r"chest.*tight",
        r"pain.*radiating.*(arm|jaw|shoulder|back)",
    ],
    "Difficulty breathing": [
        r"can'?t breathe",
        r"difficulty breathing",
        r"short(ness)? of breath",
        r"\bsob\b",
        r"gasping",
        r"wheez",
        r"choking",
    ],
    "Severe bleeding": [
        r"heavy bleeding",
        r"profuse bleeding",
        r"bleeding.*won'?t stop",
        r"vomiting blood",
        r"blood in.*(vomit|stool)",
    ],
    "Altered consciousness": [
        r"loss of consciousness",
        r"passed out",
        r"blacked out",
        r"faint",
        r"unresponsive",
        r"drowsy",
        r"seizure",
    ],
    "Severe pain": [
        r"severe pain",
        r"excruciating",
        r"worst pain",
        r"pain.*(10|ten)/10",
    ],
    "Suspected stroke": [
        r"face.*droop",
        r"facial.*droop",
        r"slurred speech",
        r"(arm|leg).*weak",
        r"one side.*(numb|weak)",
        r"worst headache",
        r"thunderclap headache",
    ],
    "Severe allergic reaction": [
        r"anaphyla",
        r"severe allergic",
        r"(face|lip|tongue).*swell",
        r"throat.*closing",
    ],
    "Head injury": [
        r"head injury",
        r"hit.*head",
        r"head trauma",
        r"concussion",
    ],
    "Abdominal pain": [
        r"abdominal pain",
        r"stomach (pain|ache)",
        r"abdomen.*rigid",
        r"belly pain",
    ],
    "Fever with confusion": [
        r"fever.*confus",
        r"confus.*fever",
        r"fever.*(disoriented|delirious)",
    ],
}


def suggest_red_flags(text: str) -> List[str]:
    """
    Suggest checklist red flags from a chief complaint.

    Suggestions are only a prompt for the triage nurse; the flags stored on
    the triage record are whatever staff select.

    Args:
        text: Free-text chief complaint

    Returns:
        Matching entries of RED_FLAG_OPTIONS, in checklist order
    """
    text_lower = text.lower()
    suggested = []

    for flag in RED_FLAG_OPTIONS:
        for pattern in RED_FLAG_PATTERNS.get(flag, []):
            if re.search(pattern, text_lower):
                suggested.append(flag)
                break  # Only add each flag once

    return suggested
