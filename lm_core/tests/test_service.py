import tempfile
from pathlib import Path

from lm_core.api.service import build_context, lint_properties
from lm_core.config.settings import settings
from lm_core.domain.models import LmUnavailable
from lm_core.providers.registry import register_local_provider
from lm_core.rules import PropertyInfo


class LocalProvider:
    name = "local"

    def __init__(self):
        self.calls = 0

    def chat_complete(self, messages, options):
        self.calls += 1
        return '{"type": "content", "renameNeeded": true, "suggestedNames": ["IsActive"]}'


def test_build_context_places_cache_in_project_root():
    with tempfile.TemporaryDirectory() as d:
        ctx = build_context(project_root=d, connection_string="type=mystery")
        assert isinstance(ctx.provider, LmUnavailable)
        assert ctx.cache.path == Path(d) / settings.lm_cache_file_name


def test_lint_properties_with_local_provider_persists_cache():
    provider = LocalProvider()
    register_local_provider(provider)
    with tempfile.TemporaryDirectory() as d:
        props = [PropertyInfo("Account", "active", "boolean")]
        first = lint_properties(props, project_root=d, connection_string="type=local")
        assert [x["message_id"] for x in first] == ["renameNeeded"]
        assert first[0]["suggestions"] == ["IsActive"]
        assert (Path(d) / settings.lm_cache_file_name).exists()

        second = lint_properties(props, project_root=d, connection_string="type=local")
        assert second == first
        assert provider.calls == 1
