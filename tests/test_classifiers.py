"""Tests for the retention policy classifiers"""

from datetime import timedelta

from conftest import at
from ghcr_cleanup.classifiers import (
    GHOST,
    PARTIAL,
    classify_index,
    find_tag_deletions,
    newest_first,
    select_ghost_images,
    select_keep_n_tagged,
    select_keep_n_untagged,
    select_partial_images,
    select_tags,
    select_untagged,
    untag,
    untag_all,
)
from ghcr_cleanup.graph import build_dependency_graph
from ghcr_cleanup.models import PackageEntry
from ghcr_cleanup.reducer import reduce_candidates
from ghcr_cleanup.state import CleanupState, CleanupStats


def _reduced_state(repo, exclude_patterns=None):
    repo.load()
    graph = build_dependency_graph(repo.registry, repo.packages)
    state = CleanupState.create(graph, repo.packages.ordered_digests(), repo.packages.get_tags())
    reduce_candidates(state, repo.registry, repo.packages, exclude_patterns=exclude_patterns)
    return state


class TestGhostAndPartialImages:
    """Tests for ghost/partial classification"""

    def test_index_with_no_known_children_is_ghost(self, repo):
        repo.add_index("sha256:p", ["sha256:a", "sha256:b"])
        state = _reduced_state(repo)

        assert classify_index(state, "sha256:p") == GHOST
        assert select_ghost_images(state, repo.packages) == ["sha256:p"]
        assert state.delete_set == {"sha256:p"}
        assert "sha256:p" not in state.filter_set

    def test_index_with_some_known_children_is_partial_not_ghost(self, repo):
        repo.add_image("sha256:a")
        repo.add_index("sha256:p", ["sha256:a", "sha256:b"])
        state = _reduced_state(repo)

        assert classify_index(state, "sha256:p") == PARTIAL
        assert select_ghost_images(state, repo.packages) == []
        assert state.delete_set == set()

    def test_partial_selection_includes_ghosts(self, repo):
        repo.add_image("sha256:a")
        repo.add_index("sha256:partial", ["sha256:a", "sha256:b"])
        repo.add_index("sha256:ghost", ["sha256:x"])
        repo.add_index("sha256:complete", ["sha256:c"])
        repo.add_image("sha256:c")
        state = _reduced_state(repo)

        selected = select_partial_images(state, repo.packages)

        assert sorted(selected) == ["sha256:ghost", "sha256:partial"]
        assert "sha256:complete" in state.filter_set

    def test_leaf_manifests_are_never_ghost(self, repo):
        repo.add_image("sha256:leaf")
        state = _reduced_state(repo)

        assert classify_index(state, "sha256:leaf") is None
        assert select_partial_images(state, repo.packages) == []

    def test_empty_index_is_ghost(self, repo):
        repo.add_index("sha256:empty", [])
        state = _reduced_state(repo)

        assert classify_index(state, "sha256:empty") == GHOST


class TestKeepN:
    """Tests for keep-newest-N selection"""

    def test_keep_two_newest_tagged(self, repo):
        repo.add_image("sha256:t1", tags=["v1"], updated_at=at(1))
        repo.add_image("sha256:t3", tags=["v3"], updated_at=at(3))
        repo.add_image("sha256:t2", tags=["v2"], updated_at=at(2))
        repo.add_image("sha256:untagged", updated_at=at(0))
        state = _reduced_state(repo)

        selected = select_keep_n_tagged(state, repo.packages, 2)

        assert selected == ["sha256:t1"]
        assert state.delete_set == {"sha256:t1"}
        assert {"sha256:t2", "sha256:t3", "sha256:untagged"} <= state.filter_set

    def test_keep_zero_deletes_all_tagged(self, repo):
        repo.add_image("sha256:t1", tags=["v1"], updated_at=at(1))
        repo.add_image("sha256:t2", tags=["v2"], updated_at=at(2))
        state = _reduced_state(repo)

        assert sorted(select_keep_n_tagged(state, repo.packages, 0)) == ["sha256:t1", "sha256:t2"]

    def test_ties_keep_listing_order(self, repo):
        repo.add_image("sha256:first", updated_at=at(1))
        repo.add_image("sha256:second", updated_at=at(1))
        repo.add_image("sha256:third", updated_at=at(1))
        state = _reduced_state(repo)

        selected = select_keep_n_untagged(state, repo.packages, 1)

        assert selected == ["sha256:second", "sha256:third"]

    def test_missing_timestamps_sort_last(self):
        entries = [
            PackageEntry(1, "sha256:none"),
            PackageEntry(2, "sha256:old", updated_at=at(1)),
            PackageEntry(3, "sha256:new", updated_at=at(2)),
        ]

        assert [e.digest for e in newest_first(entries)] == ["sha256:new", "sha256:old", "sha256:none"]

    def test_keep_n_untagged_ignores_tagged(self, repo):
        repo.add_image("sha256:tagged", tags=["v1"], updated_at=at(0))
        repo.add_image("sha256:u1", updated_at=at(1))
        repo.add_image("sha256:u2", updated_at=at(2))
        state = _reduced_state(repo)

        assert select_keep_n_untagged(state, repo.packages, 1) == ["sha256:u1"]

    def test_select_untagged(self, repo):
        repo.add_image("sha256:tagged", tags=["v1"])
        repo.add_image("sha256:u1")
        repo.add_image("sha256:u2")
        state = _reduced_state(repo)

        assert select_untagged(state, repo.packages) == ["sha256:u1", "sha256:u2"]
        assert state.filter_set == {"sha256:tagged"}

    def test_only_candidates_are_considered(self, repo):
        """Children of multi-architecture images are untagged but never selected directly"""
        repo.add_image("sha256:child")
        repo.add_index("sha256:p", ["sha256:child"], tags=["v1"])
        state = _reduced_state(repo)

        assert select_untagged(state, repo.packages) == []


class TestTagDeletion:
    """Tests for explicit tag deletion and the untagging workaround"""

    def test_splits_standard_and_untagging_tags(self, repo):
        repo.add_image("sha256:single", tags=["pr-1"])
        repo.add_image("sha256:multi", tags=["pr-2", "stable"])
        repo.add_image("sha256:other", tags=["v1"])
        state = _reduced_state(repo)

        standard, untagging = find_tag_deletions(state, repo.registry, repo.packages, "pr-*")

        assert standard == ["pr-1"]
        assert untagging == ["pr-2"]

    def test_excluded_tags_are_not_matched(self, repo):
        repo.add_image("sha256:a", tags=["pr-1", "keep"])
        repo.add_image("sha256:b", tags=["pr-2"])
        state = _reduced_state(repo, exclude_patterns="pr-1")

        standard, untagging = find_tag_deletions(state, repo.registry, repo.packages, "pr-*")

        assert standard == ["pr-2"]
        assert untagging == []

    def test_tag_sharing_a_digest_with_an_excluded_tag_is_untagged(self, repo):
        """The digest leaves the filter set, its other tags stay deletable"""
        repo.add_image("sha256:d", tags=["v1", "latest"])
        state = _reduced_state(repo, exclude_patterns="latest")

        standard, untagging = find_tag_deletions(state, repo.registry, repo.packages, "v1")

        assert "sha256:d" not in state.filter_set
        assert standard == []
        assert untagging == ["v1"]

    def test_tags_of_recent_images_are_matched(self, repo):
        repo.add_image("sha256:new", tags=["pr-9"], updated_at=at(29))
        repo.add_image("sha256:old", tags=["pr-1"], updated_at=at(1))
        repo.load()
        graph = build_dependency_graph(repo.registry, repo.packages)
        state = CleanupState.create(graph, repo.packages.ordered_digests(), repo.packages.get_tags())
        reduce_candidates(state, repo.registry, repo.packages, older_than=timedelta(days=7), now=at(30))

        standard, untagging = find_tag_deletions(state, repo.registry, repo.packages, "pr-*")

        assert state.filter_set == {"sha256:old"}
        assert standard == ["pr-1", "pr-9"]
        assert untagging == []

    def test_untag_creates_and_deletes_exactly_one_new_digest(self, repo):
        repo.add_image("sha256:d", tags=["v1", "v2"])
        repo.load()

        assert untag("v1", repo.registry, repo.packages) is True

        assert len(repo.registry.puts) == 1
        tag, body, is_index = repo.registry.puts[0]
        assert tag == "v1" and body["layers"] == [] and is_index is False
        assert repo.registry.deleted_tags == ["v1"]
        assert repo.packages.load_calls[-1] is False

        new_digest = repo.registry.tags["v1"]
        assert repo.packages.deleted == [(2, new_digest, ("v1",), None)]
        # the original digest is untouched and still reachable through v2
        assert repo.registry.tags["v2"] == "sha256:d"
        assert repo.packages.remote["sha256:d"].tags == ("v2",)

    def test_untag_index_empties_children(self, repo):
        repo.add_image("sha256:c")
        repo.add_index("sha256:p", ["sha256:c"], tags=["v1", "v2"])
        repo.load()

        untag("v1", repo.registry, repo.packages)

        tag, body, is_index = repo.registry.puts[0]
        assert body["manifests"] == [] and is_index is True

    def test_untag_reports_missing_new_version(self, dry_run_repo, caplog):
        """A repointed tag whose version is not in the listing is logged and left alone"""
        repo = dry_run_repo
        repo.add_image("sha256:d", tags=["v1", "v2"])
        repo.load()
        repo.packages.remote.clear()
        repo.packages.load_packages(False)

        with caplog.at_level("INFO", logger="ghcr_cleanup.classifiers"):
            assert untag("v1", repo.registry, repo.packages) is False

        assert "couldn't find newly created package" in caplog.text
        assert repo.packages.deleted == []

    def test_untag_all_defers_tags_left_single(self, repo):
        repo.add_image("sha256:d", tags=["v1", "v2"])
        repo.load()
        stats = CleanupStats()

        deferred = untag_all(["v1", "v2"], repo.registry, repo.packages, stats)

        assert deferred == ["v2"]
        assert stats.images_deleted == 1

    def test_select_tags_moves_digests(self, repo):
        repo.add_image("sha256:a", tags=["pr-1"])
        state = _reduced_state(repo)

        assert select_tags(state, repo.registry, ["pr-1"]) == ["sha256:a"]
        assert state.delete_set == {"sha256:a"}
        assert state.filter_set == set()
