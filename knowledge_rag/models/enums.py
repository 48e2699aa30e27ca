"""Enum definitions shared across the knowledge base."""

from enum import Enum


class SourceType(str, Enum):
    DOCUMENT = "document"
    CONVERSATION = "conversation"
    SCREENSHOT = "screenshot"
    AUDIO = "audio"
    EXTERNAL_DATABASE = "external_database"


class SourcePool(str, Enum):
    """Names callers use to enable pools in multi-source retrieval."""

    DOCUMENTS = "documents"
    CONVERSATIONS = "conversations"
    SCREENSHOTS = "screenshots"
    AUDIO = "audio"
    EXTERNAL = "external"


class EmbeddingBackend(str, Enum):
    AUTO = "auto"
    DETERMINISTIC = "deterministic"
    OPENAI = "openai"
    GEMINI = "gemini"


class EntityType(str, Enum):
    PROJECT = "project"
    PERSON = "person"
    COMPANY = "company"
    TOPIC = "topic"
    TECHNOLOGY = "technology"


POOL_SOURCE_TYPES: dict[SourcePool, SourceType] = {
    SourcePool.DOCUMENTS: SourceType.DOCUMENT,
    SourcePool.CONVERSATIONS: SourceType.CONVERSATION,
    SourcePool.SCREENSHOTS: SourceType.SCREENSHOT,
    SourcePool.AUDIO: SourceType.AUDIO,
    SourcePool.EXTERNAL: SourceType.EXTERNAL_DATABASE,
}
