import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest

from control_center.core.settings import AppSettings
from control_center.schemas.relays import FileChange, PushRequest, SitePush
from control_center.services.github_repos import GitHubRepoService
from control_center.services.relays import GitHubRepoRelay, RelayError


def _relay(handler, token="ghp_test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubRepoRelay(client, AppSettings(GITHUB_TOKEN=token))


def _app(url="https://github.com/acme/shop", visibility="public"):
    return SimpleNamespace(
        id=uuid4(), site_id=uuid4(), github_repo_url=url, github_repo_owner=None,
        github_repo_name=None, github_visibility=visibility,
    )


def _service(relay, apps=()):
    service = GitHubRepoService(MagicMock(), relay)
    service.apps = MagicMock(
        list_with_site_names=AsyncMock(return_value=list(apps)),
        get_for_site=AsyncMock(return_value=None),
        update=AsyncMock(),
    )
    service.audit = MagicMock(record=AsyncMock())
    return service


def _site_push(**overrides):
    values = dict(
        siteId=str(uuid4()), siteName="Shop", repoOwner="acme", repoName="shop",
        commitMessage="Update footer", changes=[{"path": "src/Footer.tsx", "content": "export {}"}],
    )
    values.update(overrides)
    return SitePush.model_validate(values)


class GitServer:
    """Answers the git data API calls of a push and records them."""

    def __init__(self, fail=None):
        self.calls = []
        self.fail = fail

    def __call__(self, request):
        path = request.url.path
        self.calls.append((request.method, path))
        if self.fail and self.fail(request):
            return httpx.Response(422, json={"message": "nope"})
        if path.endswith("/git/refs/heads/main") and request.method == "GET":
            return httpx.Response(200, json={"object": {"sha": "head1"}})
        if path.endswith("/git/commits/head1"):
            return httpx.Response(200, json={"tree": {"sha": "tree0"}})
        if path.endswith("/git/blobs"):
            return httpx.Response(201, json={"sha": "blob1"})
        if path.endswith("/git/trees"):
            return httpx.Response(201, json={"sha": "tree1"})
        if path.endswith("/git/commits"):
            return httpx.Response(201, json={"sha": "commit1"})
        return httpx.Response(200, json={"ref": "refs/heads/main"})


# --- push -----------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_push_site_runs_git_data_sequence():
    server = GitServer()
    result = await _relay(server).push_site(_site_push())

    assert result.status == "success"
    assert result.commit_sha == "commit1"
    assert result.commit_url == "https://github.com/acme/shop/commit/commit1"
    assert result.message == "Pushed 1 file(s)"
    assert [method for method, _ in server.calls] == ["GET", "GET", "POST", "POST", "POST", "PATCH"]
    assert server.calls[-1][1] == "/repos/acme/shop/git/refs/heads/main"


@pytest.mark.asyncio
async def test_push_site_sends_commit_on_top_of_head():
    bodies = {}
    server = GitServer()

    def handler(request):
        if request.method in ("POST", "PATCH"):
            bodies[request.url.path.rsplit("/", 1)[-1]] = json.loads(request.content)
        return server(request)

    await _relay(handler).push_site(_site_push())

    assert bodies["trees"] == {
        "base_tree": "tree0",
        "tree": [{"path": "src/Footer.tsx", "mode": "100644", "type": "blob", "sha": "blob1"}],
    }
    assert bodies["commits"]["parents"] == ["head1"]
    assert bodies["main"] == {"sha": "commit1", "force": False}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"changes": []}, "No changes to push"),
        ({"repoOwner": None}, "Repository information incomplete"),
    ],
)
async def test_push_site_skips_without_calls(overrides, message):
    server = GitServer()
    result = await _relay(server).push_site(_site_push(**overrides))
    assert (result.status, result.message) == ("skipped", message)
    assert server.calls == []


@pytest.mark.asyncio
async def test_push_site_reports_missing_branch_as_failed():
    server = GitServer(fail=lambda r: "/refs/heads/" in r.url.path)
    result = await _relay(server).push_site(_site_push())
    assert result.status == "failed"
    assert result.message == "Failed to get branch: 422"


@pytest.mark.asyncio
async def test_push_site_skips_when_no_blob_was_created():
    server = GitServer(fail=lambda r: r.url.path.endswith("/git/blobs"))
    result = await _relay(server).push_site(_site_push())
    assert (result.status, result.message) == ("skipped", "No files could be processed")
    assert not any(path.endswith("/git/trees") for _, path in server.calls)


@pytest.mark.asyncio
async def test_push_without_token_is_400():
    relay = _relay(GitServer(), token=None)
    with pytest.raises(RelayError) as exc:
        await relay.push_site(_site_push())
    assert exc.value.status_code == 400
    assert exc.value.body.code == "GITHUB_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_push_records_head_commit_and_audits():
    app = _app()
    service = _service(_relay(GitServer()))
    service.apps.get_for_site.return_value = app
    request = PushRequest(sites=[_site_push(), _site_push(changes=[])])

    report = await service.push(request, user_id=uuid4())

    assert report.summary.model_dump() == {"total": 2, "success": 1, "failed": 0, "skipped": 1}
    update_kwargs = service.apps.update.await_args.kwargs
    assert update_kwargs["github_last_commit_sha"] == "commit1"
    assert update_kwargs["github_last_push_at"] is not None
    audit = service.audit.record.await_args.kwargs
    assert audit["action"] == "github_push_changes"
    assert audit["details"]["sites_processed"] == 2
    assert audit["details"]["results"][0]["commitSha"] == "commit1"


@pytest.mark.asyncio
async def test_push_with_no_sites_is_400():
    service = _service(_relay(GitServer()))
    with pytest.raises(RelayError) as exc:
        await service.push(PushRequest(sites=[]))
    assert exc.value.status_code == 400
    service.audit.record.assert_not_awaited()


# --- visibility -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_visibility_rejects_unknown_action():
    service = _service(_relay(GitServer()))
    with pytest.raises(RelayError) as exc:
        await service.visibility("delete")
    assert exc.value.body.error == 'Invalid action. Use "scan" or "remediate"'


@pytest.mark.asyncio
async def test_visibility_scan_makes_no_github_calls():
    server = GitServer()
    service = _service(_relay(server, token=None), apps=[(_app(), "Shop"), (_app(url=None), "Blog")])

    report = await service.visibility("scan")

    assert server.calls == []
    assert [e.status for e in report.inventory] == ["skipped", "skipped"]
    assert report.inventory[0].message == "Ready for visibility change"
    assert report.inventory[0].repo_owner == "acme"
    assert "github_repo_url" in report.inventory[1].message
    assert report.final_acceptance.all_private is False
    service.audit.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_remediate_without_token_is_400_before_any_call():
    service = _service(_relay(GitServer(), token=None), apps=[(_app(), "Shop")])
    with pytest.raises(RelayError) as exc:
        await service.visibility("remediate")
    assert exc.value.status_code == 400
    assert exc.value.body.error == "GITHUB_TOKEN secret not configured"
    service.apps.list_with_site_names.assert_not_awaited()


@pytest.mark.asyncio
async def test_remediate_switches_public_repos_and_audits():
    patched = []

    def handler(request):
        if request.method == "PATCH":
            patched.append(request.url.path)
            assert json.loads(request.content) == {"private": True, "visibility": "private"}
            return httpx.Response(200, json={"private": True})
        private = request.url.path.endswith("/vault")
        return httpx.Response(200, json={"private": private})

    apps = [
        (_app("https://github.com/acme/shop"), "Shop"),
        (_app("acme/vault", visibility="private"), "Vault"),
    ]
    service = _service(_relay(handler), apps=apps)

    report = await service.visibility("remediate", user_id=uuid4())

    assert patched == ["/repos/acme/shop"]
    assert [e.message for e in report.inventory] == [
        "Successfully changed to private",
        "Already private - no change needed",
    ]
    assert report.inventory[0].current_visibility == "public"
    assert report.final_acceptance.all_private is True
    assert report.final_acceptance.conclusion == "All imported site repositories are now PRIVATE"
    assert service.apps.update.await_count == 2
    audit = service.audit.record.await_args.kwargs
    assert audit["action"] == "github_visibility_remediation"
    assert audit["resource"] == "imported_apps"
    assert audit["details"]["summary"]["success"] == 2


@pytest.mark.asyncio
async def test_remediate_reports_failed_and_skipped():
    handler = lambda request: httpx.Response(403, json={"message": "Must have admin rights"})
    apps = [(_app(), "Shop"), (_app(url=None), "Blog")]
    service = _service(_relay(handler), apps=apps)

    report = await service.visibility("remediate")

    assert [e.status for e in report.inventory] == ["failed", "skipped"]
    assert report.inventory[0].message == "Failed to get repository: 403"
    assert report.final_acceptance.all_private is False
    assert report.final_acceptance.conclusion.startswith("0/2 repositories are private")
    assert "Some repositories need github_repo_url configured" in report.final_acceptance.residual_risks
    service.apps.update.assert_not_awaited()
