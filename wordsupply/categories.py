from typing import Dict, Tuple

AVAILABLE_CATEGORIES: Dict[str, str] = {
    "people": "Famous People",
    "places": "Places",
    "animals": "Animals",
    "objects": "Objects",
    "movies": "Movies and Series",
    "music": "Music",
    "food": "Food and Drinks",
    "sports": "Sports",
    "professions": "Professions",
    "nature": "Nature",
}

DIFFICULTIES: Tuple[str, ...] = ("easy", "medium", "hard")

DIFFICULTY_INSTRUCTIONS: Dict[str, str] = {
    "easy": (
        "Prefer very common words and short phrases that are general knowledge and easy to guess. "
        "Avoid very specific terms or jargon."
    ),
    "medium": (
        "Aim for a balanced mix of popular examples and somewhat more specific, creative ones that are "
        "still widely recognizable. Avoid the most obvious and the most obscure items."
    ),
    "hard": (
        "Look for challenging, less common or more specific words, concepts and proper names that need "
        "deeper knowledge: technical terms where the category allows, lesser-known historical figures, "
        "works of art or places. Items must still be recognizable to knowledgeable players."
    ),
}

GENERATION_TEMPERATURE: Dict[str, float] = {"easy": 0.65, "medium": 0.75, "hard": 0.85}


def is_valid_category(category: str) -> bool:
    return category in AVAILABLE_CATEGORIES


def is_valid_difficulty(difficulty: str) -> bool:
    return difficulty in DIFFICULTIES


def difficulty_instructions(difficulty: str) -> str:
    """Prompt guidance for a difficulty; unknown values get the medium guidance."""
    return DIFFICULTY_INSTRUCTIONS.get((difficulty or "").lower(), DIFFICULTY_INSTRUCTIONS["medium"])
