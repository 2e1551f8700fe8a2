import pytest

from gcptool.cache import CacheStore
from gcptool.errors import (
    InstanceNotFoundInProject,
    InvalidSelection,
    NotFound,
    ProviderUnavailable,
    WrongRole,
)
from gcptool.inventory import InventoryFetcher
from gcptool.resolver import Resolver
from gcptool.schemas.compute import InstanceRecord, Project
from gcptool.schemas.resolution import Candidate, ResolvedLocation


def rec(project, name, zone="us-central1-a", status="RUNNING", ext=None):
    return InstanceRecord(
        project_id=project, name=name, zone=zone, status=status, external_ip=ext
    )


def make_resolver(mocker, tmp_path, inventory):
    fetcher = mocker.Mock(spec=InventoryFetcher)
    fetcher.fetch_projects.return_value = [Project(project_id=p) for p in inventory]
    fetcher.fetch_instances.side_effect = lambda pid: inventory[pid]
    return Resolver(CacheStore(tmp_path), fetcher), fetcher


@pytest.fixture
def fleet(mocker, tmp_path):
    inventory = {
        "proj-a": [rec("proj-a", "web-1"), rec("proj-a", "author-1")],
        "proj-b": [
            rec("proj-b", "author-2", zone="europe-west1-b"),
            rec("proj-b", "db-1", zone="us-east1-c"),
        ],
        "proj-c": [rec("proj-c", "db-1"), rec("proj-c", "cache-1")],
    }
    return make_resolver(mocker, tmp_path, inventory)


def fetched_projects(fetcher):
    return [c.args[0] for c in fetcher.fetch_instances.call_args_list]


def test_exact_match_stops_at_first_project(fleet):
    resolver, fetcher = fleet

    found = resolver.resolve("db-1")

    assert found == ResolvedLocation(
        project_id="proj-b", instance="db-1", zone="us-east1-c"
    )
    # proj-c also has db-1 but is never read
    assert fetched_projects(fetcher) == ["proj-a", "proj-b"]


def test_partial_matches_in_project_order(fleet):
    resolver, _ = fleet

    found = resolver.resolve("author")

    assert isinstance(found, list)
    assert [(c.project_id, c.name) for c in found] == [
        ("proj-a", "author-1"),
        ("proj-b", "author-2"),
    ]


def test_partial_match_non_interactive_takes_first(fleet):
    resolver, _ = fleet

    found = resolver.resolve("author", interactive=False)

    assert found == ResolvedLocation(
        project_id="proj-a", instance="author-1", zone="us-central1-a"
    )


def test_single_partial_match_resolves(fleet):
    resolver, _ = fleet

    found = resolver.resolve("CACHE")

    assert found == ResolvedLocation(
        project_id="proj-c", instance="cache-1", zone="us-central1-a"
    )


def test_no_match_raises(fleet):
    resolver, fetcher = fleet

    with pytest.raises(NotFound):
        resolver.resolve("nothing-like-this")

    assert fetched_projects(fetcher) == ["proj-a", "proj-b", "proj-c"]


def test_two_argument_form(fleet):
    resolver, fetcher = fleet

    found = resolver.resolve("proj-b", "author-2")

    assert found == ResolvedLocation(
        project_id="proj-b", instance="author-2", zone="europe-west1-b"
    )
    fetcher.fetch_projects.assert_not_called()


def test_two_argument_form_unknown_instance(fleet):
    resolver, _ = fleet

    with pytest.raises(InstanceNotFoundInProject) as excinfo:
        resolver.resolve("proj-b", "web-1")

    assert excinfo.value.project == "proj-b"
    assert isinstance(excinfo.value, NotFound)


def test_fresh_cache_avoids_provider(mocker, tmp_path):
    resolver, fetcher = make_resolver(mocker, tmp_path, {})
    resolver.cache.put("projects", ["proj-a,ACTIVE,"])
    resolver.cache.put(
        "instances_proj-a", ["web-1,asia-east1-a,RUNNING,,10.0.0.2,e2-small"]
    )

    found = resolver.resolve("web-1")

    assert found.zone == "asia-east1-a"
    fetcher.fetch_projects.assert_not_called()
    fetcher.fetch_instances.assert_not_called()


def test_lookup_refetches_when_cache_misses_name(mocker, tmp_path):
    inventory = {"proj-a": [rec("proj-a", "web-1"), rec("proj-a", "web-9")]}
    resolver, fetcher = make_resolver(mocker, tmp_path, inventory)
    resolver.cache.put("instances_proj-a", ["web-1,us-central1-a,RUNNING,,,"])

    location = resolver.lookup("proj-a", "web-9")

    assert location.instance == "web-9"
    fetcher.fetch_instances.assert_called_once_with("proj-a")


def test_lookup_from_live_data_does_not_refetch(fleet):
    resolver, fetcher = fleet

    with pytest.raises(InstanceNotFoundInProject):
        resolver.lookup("proj-a", "web-9")

    fetcher.fetch_instances.assert_called_once_with("proj-a")


def test_unreachable_project_is_skipped(mocker, tmp_path):
    inventory = {"proj-a": [], "proj-b": [rec("proj-b", "web-1")]}
    resolver, fetcher = make_resolver(mocker, tmp_path, inventory)

    def fetch(pid):
        if pid == "proj-a":
            raise ProviderUnavailable("list instances in proj-a")
        return inventory[pid]

    fetcher.fetch_instances.side_effect = fetch

    assert resolver.resolve("web-1").project_id == "proj-b"


def test_stale_projects_used_when_provider_down(mocker, tmp_path):
    now = [1_000_000.0]
    fetcher = mocker.Mock(spec=InventoryFetcher)
    fetcher.fetch_projects.side_effect = ProviderUnavailable("list projects")
    resolver = Resolver(CacheStore(tmp_path, clock=lambda: now[0]), fetcher)
    resolver.cache.put("projects", ["proj-old,ACTIVE,Old"])
    now[0] += 3600

    projects = resolver.projects()

    assert [p.project_id for p in projects] == ["proj-old"]
    fetcher.fetch_projects.assert_called_once()


def test_projects_empty_when_nothing_available(mocker, tmp_path):
    fetcher = mocker.Mock(spec=InventoryFetcher)
    fetcher.fetch_projects.side_effect = ProviderUnavailable("list projects")

    assert Resolver(CacheStore(tmp_path), fetcher).projects() == []


def test_choose_from():
    candidates = [
        Candidate(project_id="a", name="author-1", zone="z1", status="RUNNING"),
        Candidate(project_id="b", name="author-2", zone="z2", status="RUNNING"),
    ]

    assert Resolver.choose_from(candidates, "2") == ResolvedLocation(
        project_id="b", instance="author-2", zone="z2"
    )
    assert Resolver.choose_from(candidates, 1).instance == "author-1"

    for bad in ("0", "3", "x", ""):
        with pytest.raises(InvalidSelection):
            Resolver.choose_from(candidates, bad)


def test_find_by_role(mocker, tmp_path):
    inventory = {
        "proj-a": [
            rec("proj-a", "prod-author-1"),
            rec("proj-a", "prod-Author-2", status="TERMINATED"),
            rec("proj-a", "prod-publish-1"),
        ]
    }
    resolver, _ = make_resolver(mocker, tmp_path, inventory)

    assert resolver.find_by_role("proj-a", "AUTHOR") == [
        "prod-author-1",
        "prod-Author-2",
    ]
    assert resolver.find_by_role("proj-a", "author", running_only=True) == [
        "prod-author-1"
    ]
    assert resolver.find_by_role("proj-a", "dispatcher") == []


def test_resolve_aem_rejects_dispatcher_before_lookup(fleet):
    resolver, fetcher = fleet

    with pytest.raises(WrongRole):
        resolver.resolve_aem("prod-Dispatcher-1")

    fetcher.fetch_projects.assert_not_called()
    fetcher.fetch_instances.assert_not_called()


def test_resolve_aem_excludes_dispatchers(mocker, tmp_path):
    inventory = {
        "proj-a": [
            rec("proj-a", "aem-dispatcher-1"),
            rec("proj-a", "aem-publish-1"),
        ]
    }
    resolver, _ = make_resolver(mocker, tmp_path, inventory)

    found = resolver.resolve_aem("aem")

    assert found == ResolvedLocation(
        project_id="proj-a", instance="aem-publish-1", zone="us-central1-a"
    )


def test_search_lists_every_match(fleet):
    resolver, _ = fleet

    names = [(c.project_id, c.name) for c in resolver.search("DB")]

    assert names == [("proj-b", "db-1"), ("proj-c", "db-1")]


def test_resolve_aem_rejects_any_name_holding_the_dispatcher_token(fleet):
    resolver, _ = fleet

    with pytest.raises(WrongRole):
        resolver.resolve_aem("prod-dispatcher-3-author")
