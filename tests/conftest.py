"""
Pytest configuration and fixtures.
"""

from typing import List

import pytest

from knowledge_rag.models import AutoIndexedContent, SettingsConfig, SourceType
from knowledge_rag.rag.embedding_provider import DeterministicEmbeddingProvider
from tests.fixtures.providers import FailingEmbeddingProvider


@pytest.fixture
def settings() -> SettingsConfig:
    return SettingsConfig()


@pytest.fixture
def deterministic_provider() -> DeterministicEmbeddingProvider:
    return DeterministicEmbeddingProvider()


@pytest.fixture
def failing_provider() -> FailingEmbeddingProvider:
    return FailingEmbeddingProvider()


@pytest.fixture
def sample_text() -> str:
    return (
        "Quarterly planning notes. The Atlas migration moves billing onto the new "
        "ledger service. Risks: schema drift between regions and a tight deadline. "
        "Owners: Marie Dupont for data, Jean Martin for rollout. "
    ) * 6


@pytest.fixture
def pool_entries() -> List[AutoIndexedContent]:
    return [
        AutoIndexedContent(
            owner_id="user-1",
            source_type=SourceType.CONVERSATION,
            source_id="conv-1",
            source_title="Atlas standup",
            content="We discussed the atlas migration timeline and billing risks.",
            content_summary="Atlas migration timeline review",
            importance_score=0.6,
        ),
        AutoIndexedContent(
            owner_id="user-1",
            source_type=SourceType.SCREENSHOT,
            source_id="shot-1",
            source_title="Dashboard capture",
            content="Billing dashboard showing migration progress at 40 percent",
            importance_score=0.5,
        ),
        AutoIndexedContent(
            owner_id="user-1",
            source_type=SourceType.AUDIO,
            source_id="audio-1",
            source_title="Call with finance",
            content="Long transcript about budgets",
            content_summary="Finance call covering atlas migration budget",
            importance_score=0.5,
        ),
        AutoIndexedContent(
            owner_id="user-1",
            source_type=SourceType.EXTERNAL_DATABASE,
            source_id="crm-42",
            source_title="CRM account record",
            content="Account notes mention the atlas migration contract",
            importance_score=None,
        ),
    ]
