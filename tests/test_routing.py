"""Tests for backend selection."""

import pytest

from knative_run_proxy.config import ProxyConfig
from knative_run_proxy.routing import (
    BackendRouter,
    BackendTarget,
    RouteRule,
    namespace_matcher,
    path_segments,
)

RESOURCE_PATHS = [
    "/apis/serving.knative.dev/v1alpha1/namespaces/default/services",
    "/apis/serving.knative.dev/v1alpha1/namespaces/ns/services/foo",
    "/apis/serving.knative.dev/v1/namespaces/default/revisions/foo-00001",
    "/apis/domains.cloudrun.com/v1alpha1/namespaces/p/domainmappings",
    "/apis/serving.knative.dev/v1/namespaces/",
    "/api/v1/namespaces/default/configmaps",
    "/apis/serving.knative.dev/v1alpha1/watch/namespaces/default/services",
    "/apis/serving.knative.dev/v1/services/namespaces/status",
]

DISCOVERY_PATHS = [
    "/openapi",
    "/openapi/v2",
    "/swagger-2.0.0.pb-v1",
    "/apis/serving.knative.dev/v1alpha1",
    "/apis/serving.knative.dev/v1alpha1/namespaces",
    "/apis/",
    # Marker text inside a segment is not the marker
    "/apis/serving.knative.dev/v1/services/my-namespaces-svc",
    "/apis/serving.knative.dev/v1/namespacesx/default",
    "",
    "/",
]


@pytest.fixture
def router():
    return BackendRouter.from_config(
        ProxyConfig(resource_backend="run.example.test", discovery_backend="10.0.0.1")
    )


class TestPathSegments:
    """Test path tokenizing."""

    def test_leading_slash_ignored(self):
        assert path_segments("/apis/g/v1") == ["apis", "g", "v1"]

    def test_trailing_slash_keeps_empty_segment(self):
        assert path_segments("/apis/") == ["apis", ""]


class TestNamespaceMatcher:
    """Test namespaced-path detection."""

    @pytest.mark.parametrize("path", RESOURCE_PATHS)
    def test_namespaced_paths_match(self, path):
        assert namespace_matcher()(path)

    @pytest.mark.parametrize("path", DISCOVERY_PATHS)
    def test_other_paths_do_not_match(self, path):
        assert not namespace_matcher()(path)

    def test_watch_path_matches(self):
        """Watch paths put the marker after /watch/ and are still namespaced."""
        assert namespace_matcher()("/apis/serving.knative.dev/v1alpha1/watch/namespaces/default/services")

    def test_custom_marker(self):
        matcher = namespace_matcher("projects")
        assert matcher("/apis/g/v1/projects/p/things")
        assert not matcher("/apis/g/v1/namespaces/p/things")


class TestBackendRouter:
    """Test target selection."""

    @pytest.mark.parametrize("path", RESOURCE_PATHS)
    def test_resource_paths_use_verified_backend(self, router, path):
        target = router.select(path)

        assert target == BackendTarget(host="run.example.test", scheme="https", verify_peer=True)
        assert router.classify(path) == "resource"

    @pytest.mark.parametrize("path", DISCOVERY_PATHS)
    def test_discovery_paths_use_unverified_backend(self, router, path):
        target = router.select(path)

        assert target == BackendTarget(host="10.0.0.1", scheme="https", verify_peer=False)
        assert router.classify(path) == "discovery"

    def test_selection_is_stable(self, router):
        path = RESOURCE_PATHS[0]
        assert {router.select(path) for _ in range(10)} == {router.select(path)}

    def test_first_matching_rule_wins(self):
        a = BackendTarget(host="a")
        b = BackendTarget(host="b")
        fallback = RouteRule("fallback", lambda p: True, BackendTarget(host="c", verify_peer=False))
        router = BackendRouter(
            rules=[
                RouteRule("a", lambda p: p.startswith("/x"), a),
                RouteRule("b", lambda p: p.startswith("/x/y"), b),
            ],
            default=fallback,
        )

        assert router.select("/x/y/z") is a
        assert router.select("/q").host == "c"

    def test_default_config_targets(self):
        router = BackendRouter.from_config(ProxyConfig())

        assert router.select(RESOURCE_PATHS[0]).host == "us-central1-run.googleapis.com"
        assert router.select("/openapi/v2").host == "146.148.59.112"

    def test_watch_path_is_verified_with_default_config(self):
        target = BackendRouter.from_config(ProxyConfig()).select(
            "/apis/serving.knative.dev/v1alpha1/watch/namespaces/default/services"
        )

        assert target == BackendTarget(host="us-central1-run.googleapis.com", scheme="https", verify_peer=True)

    def test_base_url(self):
        assert BackendTarget(host="h", scheme="https").base_url == "https://h"
