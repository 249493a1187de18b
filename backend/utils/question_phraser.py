"""
Question Phraser - Optional prose rendering of a question stem

Responsibilities:
- Ask an injected text-generation client to rephrase a question prompt
- Fall back to the catalog prompt on any generation failure
- Never touch format hints (appended later, verbatim, by the wrapper)

Design principles:
- Dependency injection (client passed in, duck-typed on generate())
- Generation failures are logged and recovered locally
"""

import logging

from backend.contracts import QuestionNode

logger = logging.getLogger(__name__)

# Generated stems longer than this are discarded
MAX_STEM_LENGTH = 300


class QuestionPhraser:
    """Rephrase question stems through a text-generation client."""

    def __init__(self, client, max_tokens: int = 64, temperature: float = 0.3) -> None:
        """
        Initialize phraser with a generation client

        Args:
            client: Object with callable generate(prompt, max_tokens, temperature)
            max_tokens: Max tokens to generate
            temperature: Sampling temperature

        Raises:
            TypeError: If client has no callable generate() method
        """
        if not (hasattr(client, 'generate') and callable(getattr(client, 'generate', None))):
            raise TypeError("client must have callable generate() method")

        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"Question Phraser initialized (temp={temperature}, max_tokens={max_tokens})")

    def phrase(self, question: QuestionNode) -> str:
        """
        Rephrase a question prompt conversationally.

        Returns:
            str: Generated stem, or question.prompt if generation fails or
            produces nothing usable
        """
        prompt = self._build_prompt(question)

        try:
            generated = self.client.generate(
                prompt=prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            logger.error(
                f"[{question.id}] Phrasing failed: {type(e).__name__} - {e}, using catalog prompt"
            )
            return question.prompt

        stem = self._clean(generated)
        if not stem or len(stem) > MAX_STEM_LENGTH:
            logger.warning(f"[{question.id}] Unusable phrasing output, using catalog prompt")
            return question.prompt

        logger.debug(f"[{question.id}] Phrased: {stem}")
        return stem

    @staticmethod
    def _clean(generated) -> str:
        if not isinstance(generated, str):
            return ""
        lines = generated.strip().splitlines()
        if not lines:
            return ""
        # First line only
        return lines[0].strip().strip('"').strip()

    @staticmethod
    def _build_prompt(question: QuestionNode) -> str:
        return f"""You are a friendly sustainability compliance assessor.

Rephrase the following assessment question so it sounds natural in conversation.
Topic area: {question.category}
Question: "{question.prompt}"

Rules:
- Keep the meaning exactly the same
- Return ONE sentence only, with no preamble
- Do not list answer options or scales
"""
