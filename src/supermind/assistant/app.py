"""FastAPI application for the personal assistant.

This is the main entry point for the assistant API server.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import configure_auth, create_assistant_dependencies, router
from .config import AssistantSettings
from .delegation import (
    ComposioConfig,
    ComposioToolkitClient,
    PostgresIntegrationStore,
    parse_capability,
)
from .domain.entities import UserContext
from .memory import ConversationStore, SupermemoryClient, SupermemoryConfig
from .orchestrator import ConversationOrchestrator, OrchestratorConfig, OrchestratorPool
from .providers import AnthropicProvider, BaseLLMProvider, LLMProviderConfig, OpenAIProvider

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _init_llm_provider(settings: AssistantSettings) -> Optional[BaseLLMProvider]:
    """Create the model provider: Anthropic (API or Bedrock) first, OpenAI as fallback."""
    if not settings.has_llm:
        logger.warning(
            "No LLM configured (ANTHROPIC_API_KEY, ANTHROPIC_BEDROCK_REGION or OPENAI_API_KEY)"
        )
        return None

    if settings.uses_anthropic:
        try:
            extra = {}
            default_model = AnthropicProvider.DEFAULT_MODEL
            if settings.anthropic_bedrock_region:
                extra["bedrock_region"] = settings.anthropic_bedrock_region
                default_model = AnthropicProvider.DEFAULT_BEDROCK_MODEL
            config = LLMProviderConfig(
                api_key=settings.anthropic_api_key or "",
                model=settings.anthropic_model or default_model,
                extra=extra,
            )
            provider = AnthropicProvider(config)
            logger.info(f"Using Anthropic provider with model: {config.model}")
            return provider
        except Exception as e:
            logger.warning(f"Failed to initialize Anthropic provider: {e}")

    if settings.openai_api_key:
        try:
            config = LLMProviderConfig(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
            )
            provider = OpenAIProvider(config)
            logger.info(f"Using OpenAI provider with model: {config.model}")
            return provider
        except Exception as e:
            logger.warning(f"Failed to initialize OpenAI provider: {e}")

    logger.warning("No LLM provider could be initialized - assistant will be unavailable")
    return None


def build_pool(
    settings: AssistantSettings,
    llm: BaseLLMProvider,
    memory: Optional[SupermemoryClient] = None,
    toolkit: Optional[ComposioToolkitClient] = None,
    conversation_store: Optional[ConversationStore] = None,
    integration_store: Optional[PostgresIntegrationStore] = None,
) -> OrchestratorPool:
    """Create the pool building one orchestrator per (user, session).

    Raises:
        UnknownCapabilityError: If a configured capability is unknown
    """
    capabilities = [parse_capability(name) for name in settings.capabilities]
    if capabilities and toolkit is None:
        logger.warning("COMPOSIO_API_KEY not configured - delegation tools disabled")
        capabilities = []

    orchestrator_config = OrchestratorConfig(max_steps=settings.max_tool_steps)

    def factory(context: UserContext) -> ConversationOrchestrator:
        return ConversationOrchestrator.initialize(
            identity=context.user_id,
            session_id=context.session_id,
            llm=llm,
            memory=memory,
            toolkit=toolkit,
            integration_store=integration_store,
            capabilities=capabilities,
            tone=settings.tone,
            fallback_connection_ids=settings.fallback_connection_ids,
            conversation_store=conversation_store,
            config=orchestrator_config,
        )

    return OrchestratorPool(
        factory,
        conversation_store=conversation_store,
        max_sessions=settings.max_sessions,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Database pool, model provider, memory and toolkit clients
    - Shutdown: Close them in reverse order
    """
    logger.info("Starting Assistant API...")
    settings = AssistantSettings.from_env()
    configure_auth()

    db_pool = None
    conversation_store = None
    integration_store = None
    if settings.database_url:
        try:
            db_pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=10)
            conversation_store = ConversationStore(db_pool)
            await conversation_store.ensure_schema()
            integration_store = PostgresIntegrationStore(db_pool)
            logger.info("Database pool initialized")
        except Exception as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise
    else:
        logger.warning("DATABASE_URL not configured - history is kept in memory only")

    llm = _init_llm_provider(settings)

    memory = None
    if settings.supermemory_api_key:
        memory = SupermemoryClient(
            SupermemoryConfig(
                api_key=settings.supermemory_api_key,
                base_url=settings.supermemory_base_url,
            )
        )
        logger.info("Supermemory client initialized")

    toolkit = None
    if settings.composio_api_key:
        toolkit = ComposioToolkitClient(
            ComposioConfig(
                api_key=settings.composio_api_key,
                base_url=settings.composio_base_url,
            )
        )
        logger.info("Composio toolkit client initialized")

    pool = None
    if llm:
        pool = build_pool(settings, llm, memory, toolkit, conversation_store, integration_store)
        create_assistant_dependencies(pool, model_name=llm.model_name)
        logger.info("Assistant initialized successfully")

    yield

    # Shutdown (reverse order of initialization)
    logger.info("Shutting down Assistant API...")
    create_assistant_dependencies(None)
    if pool:
        await pool.close()
    if toolkit:
        await toolkit.close()
    if memory:
        await memory.close()
    if llm:
        await llm.close()
    if db_pool:
        await db_pool.close()
        logger.info("Database pool closed")


app = FastAPI(
    title="Personal Assistant API",
    description="Conversational assistant with long-term memory and Gmail/Calendar delegation.",
    version="1.0.0",
    lifespan=lifespan,
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)

app.include_router(router)


@app.get("/health")
async def health():
    """Global health check."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.supermind.assistant.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
