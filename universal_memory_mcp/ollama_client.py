"""
Ollama text enhancement client for Universal Memory MCP

Every public coroutine returns a CollaboratorResult. Failures of the Ollama
server (connection errors, bad status, unparseable output) are logged and
replaced by a fallback value; they never propagate to the caller.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, TypeVar

import httpx

from .exceptions import CollaboratorError
from .models import ExtractedMemory, Memory, ScoredMemory, clamp_importance, DEFAULT_IMPORTANCE
from .similarity import jaccard_similarity

logger = logging.getLogger("universal-memory.ollama")

T = TypeVar("T")

ENHANCED = "enhanced"
FALLBACK = "fallback"

EXTRACT_MIN_LENGTH = 20
EXTRACT_FALLBACK_CHARS = 200
RANK_THRESHOLD = 0.7

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_SCORE_ARRAY = re.compile(r"\[[\d\s,.]+\]")

ENHANCE_PROMPT = """You are a memory enhancement system. Take the following content and improve it for better recall and searchability while preserving all important information.

Context: {context}
Original content: {content}

Enhanced memory (be concise but comprehensive):"""

EXTRACT_PROMPT = """You are a memory extraction system. Analyze the following text and extract important facts, decisions, preferences, and context that should be remembered for future conversations.

Context: {context}
Text to analyze:
{text}

Extract key memories in this JSON format:
[
  {{
    "content": "specific fact or decision",
    "context": "category or project name",
    "importance": 1-10
  }}
]

Focus on decisions made, preferences stated, important facts, project details and technical specifications.

Only extract genuinely important information. Return valid JSON only:"""

RANK_PROMPT = """You are a semantic similarity analyzer. Given a query and a list of memories, score how relevant each memory is to the query on a scale of 0.0 to 1.0.

Query: "{query}"

Memories:
{memories}

Return only a JSON array of scores in the same order:
[0.85, 0.23, 0.67, ...]

Scores only:"""


@dataclass
class CollaboratorResult(Generic[T]):
    """Outcome of a collaborator call: the value plus whether it is a fallback"""
    value: T
    status: str = ENHANCED
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.status == FALLBACK


def fallback_extraction(text: str, context: str) -> List[ExtractedMemory]:
    """Single truncated fact for texts long enough to be worth keeping"""
    if len(text.strip()) <= EXTRACT_MIN_LENGTH:
        return []
    content = text[:EXTRACT_FALLBACK_CHARS]
    if len(text) > EXTRACT_FALLBACK_CHARS:
        content += "..."
    return [ExtractedMemory(content=content, context=context, importance=DEFAULT_IMPORTANCE)]


def jaccard_rank(query: str, memories: List[Memory], threshold: float) -> List[ScoredMemory]:
    scored = [ScoredMemory(memory=m, similarity=jaccard_similarity(query, m.content)) for m in memories]
    scored = [s for s in scored if s.similarity >= threshold]
    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored


class OllamaClient:
    """Async client for a local Ollama server"""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    async def test_connection(self) -> bool:
        """Probe /api/tags and check the configured model is pulled"""
        try:
            response = await self._client.get("/api/tags")
            response.raise_for_status()
            models = [m.get("name") for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(f"Ollama connection failed: {e}")
            return False

        if self.model not in models:
            logger.warning(
                f"Model {self.model} not found (available: {models}). Run: ollama pull {self.model}"
            )
            return False

        logger.info(f"Ollama connected ({self.model})")
        return True

    async def generate(self, prompt: str, temperature: float = 0.7) -> str:
        """Raw completion; raises CollaboratorError on any failure"""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        try:
            response = await self._client.post("/api/generate", json=payload)
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Ollama request failed: {e}") from e

        if response.status_code >= 400:
            raise CollaboratorError(f"Ollama API error: {response.status_code}")

        try:
            text = response.json()["response"]
        except (ValueError, KeyError, TypeError) as e:
            raise CollaboratorError(f"Malformed Ollama response: {e}") from e
        if not isinstance(text, str):
            raise CollaboratorError("Malformed Ollama response: 'response' is not text")
        return text

    async def enhance_memory(self, content: str, context: Optional[str] = None) -> CollaboratorResult[str]:
        prompt = ENHANCE_PROMPT.format(context=context or "general", content=content)
        try:
            enhanced = (await self.generate(prompt, temperature=0.3)).strip()
        except CollaboratorError as e:
            logger.warning(f"Failed to enhance memory, using original: {e}")
            return CollaboratorResult(content, FALLBACK, str(e))
        if not enhanced:
            return CollaboratorResult(content, FALLBACK, "empty enhancement")
        return CollaboratorResult(enhanced)

    async def extract_memories(
        self, text: str, context: str = "conversation"
    ) -> CollaboratorResult[List[ExtractedMemory]]:
        prompt = EXTRACT_PROMPT.format(context=context, text=text)
        try:
            raw = await self.generate(prompt, temperature=0.2)
            items = self._parse_extraction(raw)
        except (CollaboratorError, ValueError) as e:
            logger.warning(f"Failed to extract memories: {e}")
            return CollaboratorResult(fallback_extraction(text, context), FALLBACK, str(e))

        memories = []
        for item in items:
            if not isinstance(item, dict):
                continue
            content = item.get("content")
            if not isinstance(content, str) or not content.strip():
                continue
            memories.append(ExtractedMemory(
                content=content.strip(),
                context=item.get("context") or context,
                importance=clamp_importance(item.get("importance") or DEFAULT_IMPORTANCE),
            ))
        return CollaboratorResult(memories)

    @staticmethod
    def _parse_extraction(raw: str) -> List[Any]:
        text = raw.strip()
        match = _JSON_ARRAY.search(text)
        if match:
            text = match.group(0)
        parsed = json.loads(text)
        if not isinstance(parsed, list):
            raise ValueError("Response is not an array")
        return parsed

    async def rank_memories(
        self, query: str, memories: List[Memory], threshold: float = RANK_THRESHOLD
    ) -> CollaboratorResult[List[ScoredMemory]]:
        """Ask the model to score relevance; falls back to Jaccard word overlap"""
        if not memories:
            return CollaboratorResult([])

        listing = "\n".join(f"{i}: {m.content}" for i, m in enumerate(memories))
        prompt = RANK_PROMPT.format(query=query, memories=listing)
        try:
            raw = await self.generate(prompt, temperature=0.1)
            match = _SCORE_ARRAY.search(raw)
            if not match:
                raise ValueError("Could not parse similarity scores")
            scores = [float(s) for s in json.loads(match.group(0))]
        except (CollaboratorError, ValueError, TypeError) as e:
            logger.warning(f"Failed to calculate semantic similarity: {e}")
            return CollaboratorResult(jaccard_rank(query, memories, threshold), FALLBACK, str(e))

        scored = [
            ScoredMemory(memory=m, similarity=scores[i] if i < len(scores) else 0.0)
            for i, m in enumerate(memories)
        ]
        scored = [s for s in scored if s.similarity >= threshold]
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return CollaboratorResult(scored)
