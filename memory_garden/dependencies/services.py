"""Process-wide service wiring for the API and maintenance scripts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from memory_garden import config
from memory_garden.dependencies.redis_client import get_redis_client
from memory_garden.services.analysis_cache import AnalysisCache, FileCacheTier, RedisCacheTier
from memory_garden.services.analysis_service import AnalysisService
from memory_garden.services.classifier import Classifier, ClassifierSettings
from memory_garden.services.deleter import CascadingDeleter
from memory_garden.services.memory_service import MemoryService, ProfileService
from memory_garden.services.reconciler import ClusterService
from memory_garden.storage import JsonFileRepository, MemoryRepository


logger = logging.getLogger("memory_garden.dependencies")


@dataclass
class Services:
    repository: MemoryRepository
    cache: AnalysisCache
    classifier: Classifier
    clusters: ClusterService
    deleter: CascadingDeleter
    memories: MemoryService
    profiles: ProfileService
    analysis: AnalysisService


def build_analysis_cache() -> AnalysisCache:
    ttl = config.get_analysis_cache_ttl_seconds()
    redis_client = get_redis_client()
    if redis_client is not None:
        logger.info("[deps.cache] durable_tier=redis ttl_s=%s", ttl)
        return AnalysisCache(RedisCacheTier(redis_client, ttl_seconds=ttl), ttl_seconds=ttl)
    directory = os.path.join(config.get_data_dir(), "cache")
    logger.info("[deps.cache] durable_tier=file dir=%s ttl_s=%s", directory, ttl)
    return AnalysisCache(FileCacheTier(directory), ttl_seconds=ttl)


def build_services(
    repository: MemoryRepository,
    cache: AnalysisCache,
    settings: ClassifierSettings | None = None,
    **classifier_kwargs,
) -> Services:
    profiles = ProfileService(repository)
    classifier = Classifier(
        cache,
        settings or ClassifierSettings.from_env(),
        profile_provider=profiles.get_profile,
        **classifier_kwargs,
    )
    clusters = ClusterService(repository)
    deleter = CascadingDeleter(repository, clusters)
    return Services(
        repository=repository,
        cache=cache,
        classifier=classifier,
        clusters=clusters,
        deleter=deleter,
        memories=MemoryService(repository, deleter),
        profiles=profiles,
        analysis=AnalysisService(classifier, repository),
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    repository = JsonFileRepository(config.get_data_dir(), config.get_uploads_dir())
    return build_services(repository, build_analysis_cache())
