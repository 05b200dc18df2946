"""Tests for the application factory and its lifespan."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import APIRouter

from dataroom_rag.infrastructure.app_factory import create_application
from dataroom_rag.infrastructure.config.settings import EnvironmentOption, get_settings


def fake_services():
    services = MagicMock()
    services.close = AsyncMock()
    return services


@pytest.mark.asyncio
async def test_lifespan_owns_indexing_services():
    services = fake_services()
    app = create_application(APIRouter(), services_factory=lambda settings: services, create_tables_on_startup=False)

    async with app.router.lifespan_context(app):
        assert app.state.indexing is services
        assert app.state.initialization_complete.is_set()
        services.close.assert_not_awaited()

    services.close.assert_awaited_once()


def test_docs_hidden_in_production():
    settings = get_settings().model_copy(
        update={"ENVIRONMENT": EnvironmentOption.PRODUCTION, "ENABLE_DOCS_IN_PRODUCTION": False}
    )

    app = create_application(APIRouter(), settings=settings)

    assert app.docs_url is None
    assert app.openapi_url is None


def test_docs_served_outside_production():
    settings = get_settings().model_copy(update={"ENVIRONMENT": EnvironmentOption.DEVELOPMENT})

    app = create_application(APIRouter(), settings=settings)

    assert app.docs_url == settings.DOCS_URL
    assert app.title == settings.APP_NAME
