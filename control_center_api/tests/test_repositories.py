from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from control_center.db.models.sites import Credential, Site
from control_center.repositories.sites import CredentialRepository, SiteRepository


def _repo(repo_cls, entity):
    session = MagicMock(commit=AsyncMock(), refresh=AsyncMock())
    repo = repo_cls(session)
    repo.get = AsyncMock(return_value=entity)
    return repo, session


@pytest.mark.asyncio
async def test_update_none_clears_nullable_column():
    site = Site(id=uuid4(), name="Shop", domain="shop.example.com")
    repo, session = _repo(SiteRepository, site)

    result = await repo.update(site.id, domain=None, name=None)

    assert result is site
    assert site.domain is None
    assert site.name == "Shop"
    session.commit.assert_awaited_once()
    session.refresh.assert_awaited_once_with(site)


@pytest.mark.asyncio
async def test_update_ignores_none_for_required_columns():
    credential = Credential(id=uuid4(), integration_id="stripe", email="ops@example.com", password="x" * 16,
                            additional_fields={"account": "acct_1"})
    repo, session = _repo(CredentialRepository, credential)

    await repo.update(credential.id, additional_fields=None, password=None)

    assert credential.additional_fields == {"account": "acct_1"}
    assert credential.password == "x" * 16
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_missing_row_returns_none():
    repo, session = _repo(SiteRepository, None)
    assert await repo.update(uuid4(), domain="x.example.com") is None
    session.commit.assert_not_awaited()
