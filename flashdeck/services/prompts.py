"""Prompt templates for AI card generation."""


DIFFICULTY_LEVELS = {
    False: "balanced",
    True: "challenging",
}

INCREASED_DIFFICULTY_GUIDELINES = """
For increased difficulty:
- Create questions that require deeper understanding
- Use more technical terminology
- Ask about edge cases and exceptions
- Include questions that require synthesis of multiple concepts"""


def get_system_prompt(card_count: int, increase_difficulty: bool = False) -> str:
    """Build the system prompt for flashcard creation.

    Args:
        card_count: Number of cards to generate.
        increase_difficulty: Whether to ask for harder questions.

    Returns:
        Formatted system prompt.
    """
    prompt = f"""You are an expert educational content creator specializing in creating high-quality flashcards for learning.
Given the content provided, create {card_count} flashcards with clear questions on the front and comprehensive answers on the back.
Make the flashcards {DIFFICULTY_LEVELS[bool(increase_difficulty)]} difficulty level, focusing on the most important concepts.
The output MUST be a valid JSON object with a single key 'flashcards' containing an array of flashcard objects.
Each flashcard object MUST have exactly two keys: 'front' for the question and 'back' for the answer."""

    if increase_difficulty:
        prompt += INCREASED_DIFFICULTY_GUIDELINES

    return prompt


def get_card_generation_prompt(content: str, card_count: int) -> str:
    """Build the user message carrying the source content.

    Args:
        content: The source text to generate cards from.
        card_count: Number of cards to generate.

    Returns:
        Formatted user prompt.
    """
    return f"""Please create {card_count} flashcards from the following content. Your response MUST be a JSON object with this exact structure: {{"flashcards": [{{"front": "question text", "back": "answer text"}}, ...]}}

Content to analyze:
{content}"""
