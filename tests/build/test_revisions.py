"""Tests for the git revision cache."""

import subprocess
from unittest.mock import MagicMock, patch

from buildspine.build.revisions import RevisionCache, git_ls_remote
from buildspine.graph.config_resolver import ConfigResolver
from tests._support.trees import single_version

URL = "https://github.com/cs3org/reva.git"
SHA = "0123456789abcdef0123456789abcdef01234567"
PEELED = "fedcba9876543210fedcba9876543210fedcba98"


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestGitLsRemote:
    def test_full_sha_passthrough(self):
        with patch("buildspine.build.revisions.subprocess.run") as mock_run:
            assert git_ls_remote(URL, SHA) == SHA
        mock_run.assert_not_called()

    @patch("buildspine.build.revisions.shutil.which", return_value="/usr/bin/git")
    @patch("buildspine.build.revisions.subprocess.run")
    def test_branch(self, mock_run, _which):
        mock_run.return_value = completed(f"{SHA}\trefs/heads/main\n")
        assert git_ls_remote(URL, "main") == SHA
        assert mock_run.call_args[0][0] == ["/usr/bin/git", "ls-remote", URL, "main"]

    @patch("buildspine.build.revisions.shutil.which", return_value="/usr/bin/git")
    @patch("buildspine.build.revisions.subprocess.run")
    def test_annotated_tag_prefers_peeled(self, mock_run, _which):
        mock_run.return_value = completed(f"{SHA}\trefs/tags/v1.0.0\n{PEELED}\trefs/tags/v1.0.0^{{}}\n")
        assert git_ls_remote(URL, "v1.0.0") == PEELED

    @patch("buildspine.build.revisions.shutil.which", return_value="/usr/bin/git")
    @patch("buildspine.build.revisions.subprocess.run")
    def test_head_when_no_ref(self, mock_run, _which):
        mock_run.return_value = completed(f"{SHA}\tHEAD\n")
        assert git_ls_remote(URL, None) == SHA
        assert mock_run.call_args[0][0][-1] == "HEAD"

    @patch("buildspine.build.revisions.shutil.which", return_value="/usr/bin/git")
    @patch("buildspine.build.revisions.subprocess.run")
    def test_failure_returns_none(self, mock_run, _which):
        mock_run.return_value = completed(returncode=128, stderr="repository not found")
        assert git_ls_remote(URL, "main") is None

    @patch("buildspine.build.revisions.shutil.which", return_value="/usr/bin/git")
    @patch("buildspine.build.revisions.subprocess.run", side_effect=subprocess.TimeoutExpired("git", 30))
    def test_timeout_returns_none(self, _run, _which):
        assert git_ls_remote(URL, "main") is None

    @patch("buildspine.build.revisions.shutil.which", return_value=None)
    def test_git_missing(self, _which):
        assert git_ls_remote(URL, "main") is None


class TestRevisionCache:
    def test_resolves_once(self):
        resolver = MagicMock(return_value=SHA)
        cache = RevisionCache(resolver)
        assert cache.resolve(URL, "main") == SHA
        assert cache.resolve(URL, "main") == SHA
        resolver.assert_called_once_with(URL, "main")
        assert cache.misses == 1
        assert cache[(URL, "main")] == SHA
        assert len(cache) == 1

    def test_unresolved_not_cached(self):
        cache = RevisionCache(MagicMock(return_value=None))
        assert cache.resolve(URL, "main") is None
        assert (URL, "main") not in cache

    def test_failed_lookup_not_retried(self):
        resolver = MagicMock(return_value=None)
        cache = RevisionCache(resolver)
        for _ in range(3):
            assert cache.resolve(URL, "gone") is None
        resolver.assert_called_once_with(URL, "gone")
        assert cache.misses == 1
        assert len(cache) == 0

    def test_resolve_configs_skips_local_sources(self, tree):
        tree.service(
            "svc",
            versions=single_version(),
            sources={"reva": {"url": URL, "ref": "main"}, "local": {"path": "../x"}},
        )
        cfg = ConfigResolver(tree.store).resolve("svc")
        resolver = MagicMock(return_value=SHA)
        cache = RevisionCache(resolver).resolve_configs([cfg, cfg])
        resolver.assert_called_once_with(URL, "main")
        assert dict(cache) == {(URL, "main"): SHA}
