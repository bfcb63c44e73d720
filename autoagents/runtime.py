"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache

from autoagents.agents.registry import AgentRegistry
from autoagents.config import Config
from autoagents.host import AgentHost
from autoagents.orchestration.coordinator import Coordinator
from autoagents.orchestration.orchestrator import Orchestrator
from autoagents.recipes.store import RecipeStore
from autoagents.scheduling.scheduler import IntervalScheduler
from autoagents.services.backends import BackendRegistry, EchoBackend, LLMBackend
from autoagents.services.llm_pool import LLMPool
from autoagents.services.tools import ToolCatalog


@lru_cache
def get_config() -> Config:
    return Config.from_env()


@lru_cache
def get_tool_catalog() -> ToolCatalog:
    # Workspace capabilities are registered by the embedding application.
    return ToolCatalog()


@lru_cache
def get_llm_pool() -> LLMPool:
    config = get_config()
    pool = LLMPool()

    if config.openai:
        pool.register_openai(config.openai.model, config.openai)
    if config.azure_openai:
        pool.register_azure_openai(config.azure_openai.deployment_name, config.azure_openai)

    return pool


@lru_cache
def get_backends() -> BackendRegistry:
    config = get_config()
    catalog = get_tool_catalog()
    pool = get_llm_pool()
    registry = BackendRegistry()
    registry.register("echo", EchoBackend())

    if config.openai:
        registry.register(
            "openai",
            LLMBackend(pool, catalog, model=config.openai.model, prompt_dirs=config.prompt_dirs),
        )
    if config.azure_openai:
        registry.register(
            "azure",
            LLMBackend(
                pool,
                catalog,
                model=config.azure_openai.deployment_name,
                prompt_dirs=config.prompt_dirs,
            ),
        )

    # The default backend falls back to the first model backend, or echo.
    if config.default_backend not in registry:
        fallback = next(
            (name for name in ("openai", "azure") if name in registry),
            "echo",
        )
        registry.register(config.default_backend, registry.get(fallback))

    return registry


@lru_cache
def get_scheduler() -> IntervalScheduler:
    return IntervalScheduler()


@lru_cache
def get_registry() -> AgentRegistry:
    config = get_config()
    return AgentRegistry(
        get_backends().get(config.default_backend),
        get_tool_catalog(),
        get_scheduler(),
    )


@lru_cache
def get_recipe_store() -> RecipeStore:
    return RecipeStore(get_config().recipes_dir)


@lru_cache
def get_host() -> AgentHost:
    return AgentHost(get_recipe_store(), get_registry())


@lru_cache
def get_orchestrator() -> Orchestrator:
    return Orchestrator(backends=get_backends())


@lru_cache
def get_coordinator() -> Coordinator:
    config = get_config()
    return Coordinator(
        get_orchestrator(),
        get_backends().get(config.default_backend),
        default_backend=config.default_backend,
        collect_timeout=config.collect_timeout,
        prompt_dirs=config.prompt_dirs,
    )
