"""
Unit tests for the service layer, run against the in-memory stores.
"""

import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException
from movie_catalog import services
from movie_catalog.background import BackgroundTaskTracker
from movie_catalog.filters import Filters
from movie_catalog.schemas import Credentials, MovieInput, UserActivate, UserRegister
from movie_catalog.validator import Validator

from fakes import RecordingMailer, make_movie, make_user


@pytest.mark.asyncio
async def test_concurrent_updates_from_same_version(models):
    """Test that of two writers starting from one version, exactly one wins."""
    movie = await make_movie(models)
    real_get = models.movies.get
    both_read = asyncio.Barrier(2)

    async def get_then_wait(movie_id):
        found = await real_get(movie_id)
        await both_read.wait()
        return found

    models.movies.get = get_then_wait
    results = await asyncio.gather(
        services.update_movie(models, movie.id, MovieInput(year=1943)),
        services.update_movie(models, movie.id, MovieInput(year=1944)),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, HTTPException)]
    assert len(successes) == 1
    assert len(conflicts) == 1
    assert conflicts[0].status_code == 409
    assert successes[0].version == 2


@pytest.mark.asyncio
async def test_list_movies_collects_validator_errors(models):
    """Test query-string errors already in the validator are reported with filter errors."""
    v = Validator()
    v.add_error("page", "must be an integer value")
    filters = Filters(page=1, page_size=0, sort="id", sort_safelist=services.MOVIE_SORT_SAFELIST)

    with pytest.raises(HTTPException) as exc_info:
        await services.list_movies(models, "", [], filters, v)

    assert exc_info.value.status_code == 422
    assert exc_info.value.detail == {
        "page": "must be an integer value",
        "page_size": "must be greater than zero",
    }


@pytest.mark.asyncio
async def test_activation_removes_all_activation_tokens(models, memory):
    """Test that activating deletes every activation token for the user, not just the one used."""
    _, db = memory
    user = await make_user(models, activated=False)
    used = await models.tokens.new(user.id, timedelta(days=3), "activation")
    await models.tokens.new(user.id, timedelta(days=3), "activation")
    login = await models.tokens.new(user.id, timedelta(hours=1), "authentication")

    activated = await services.activate_user(models, UserActivate(token=used.plaintext))

    assert activated.activated is True
    assert [token.scope for token in db.tokens.values()] == ["authentication"]
    assert login.hash in db.tokens


@pytest.mark.asyncio
async def test_register_user_grants_read_permission(models):
    background = BackgroundTaskTracker()
    mailer = RecordingMailer()

    user = await services.register_user(
        models,
        mailer,
        background,
        UserRegister(username="Bob", email="bob@example.com", password="pa55word123"),
    )
    await background.drain(timeout=1.0)

    permissions = await models.permissions.get_all_for_user(user.id)
    assert permissions == ["movies:read"]
    assert mailer.sent[0][0] == "bob@example.com"


@pytest.mark.asyncio
async def test_authentication_allows_inactive_users(models):
    """Test that login does not require activation."""
    await make_user(models, activated=False)

    token = await services.create_authentication_token(
        models, Credentials(email="alice@example.com", password="pa55word123")
    )

    assert len(token.token) == 26


@pytest.mark.asyncio
async def test_authentication_validates_credentials_shape(models):
    with pytest.raises(HTTPException) as exc_info:
        await services.create_authentication_token(models, Credentials(email="nope", password="short"))

    assert exc_info.value.status_code == 422
    assert exc_info.value.detail == {
        "email": "must be a valid email address",
        "password": "must be at least 8 bytes long",
    }
