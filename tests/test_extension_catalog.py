from __future__ import annotations

import httpx

from inkora.core.extension_catalog import (
    ExtensionCatalog,
    SourceDescriptor,
    descriptor_to_source,
    filter_sources,
    group_sources_by_name,
    parse_index,
)
from inkora.core.models import BackendKind, generate_source_id
from inkora.core.source_registry import SourceRegistry
from inkora.storage.cache_manager import CacheManager
from tests.conftest import make_transport

GOOD_REPO = "https://repo.example/index.min.json"
BROKEN_REPO = "https://broken.example/index.min.json"

INDEX = [
    {
        "name": "Tachiyomi: Bato.to",
        "lang": "all",
        "version": "1.4.40",
        "nsfw": 0,
        "sources": [
            {"name": "Bato.to", "lang": "en", "id": "7890050626002177109", "baseUrl": "https://bato.to"},
            {"name": "Bato.to", "lang": "fr", "id": "1234", "baseUrl": "https://bato.to/"},
        ],
    },
    {
        "name": "Tachiyomi: Hentai Place",
        "lang": "en",
        "version": "1.0.2",
        "nsfw": 1,
        "sources": [{"name": "Hentai Place", "baseUrl": "https://hplace.example", "versionId": "2"}],
    },
    {"name": "broken", "sources": "nope"},
    {"name": "Tachiyomi: Nameless", "sources": [{"baseUrl": "https://x.example"}]},
]


def test_parse_index():
    descriptors = parse_index(INDEX)

    assert [(d.name, d.lang) for d in descriptors] == [
        ("Bato.to", "en"),
        ("Bato.to", "fr"),
        ("Hentai Place", "en"),
    ]
    bato = descriptors[0]
    assert bato.id == "7890050626002177109"
    assert bato.extension_name == "Tachiyomi: Bato.to"
    assert bato.extension_version == "1.4.40"
    assert descriptors[1].base_url == "https://bato.to"

    hplace = descriptors[2]
    assert hplace.nsfw is True
    assert hplace.version_id == 2
    assert hplace.id == generate_source_id("Hentai Place", "en", 2)
    assert parse_index({"not": "a list"}) == []


def test_generated_ids_are_stable_and_positive():
    first = generate_source_id("Bato.to", "en", 1)
    assert first == generate_source_id("BATO.TO", "en", 1)
    assert first != generate_source_id("Bato.to", "fr", 1)
    assert 0 <= int(first) < 2**63


def test_grouping_and_filtering():
    descriptors = parse_index(INDEX)

    groups = group_sources_by_name(descriptors)
    assert [group.name for group in groups] == ["Bato.to", "Hentai Place"]
    assert groups[0].languages == ["en", "fr"]
    assert groups[0].variant("fr").id == "1234"
    assert groups[0].variant("de").id == "7890050626002177109"

    assert [d.lang for d in filter_sources(descriptors, language="fr")] == ["fr"]
    assert [d.name for d in filter_sources(descriptors, hide_nsfw=True)] == ["Bato.to", "Bato.to"]
    assert [d.name for d in filter_sources(descriptors, query="hplace")] == ["Hentai Place"]


def test_descriptor_to_source():
    bato = descriptor_to_source(SourceDescriptor(name="Bato.to", base_url="https://bato.to", lang="en"))
    assert not bato.is_stub
    assert bato.adapter_key == "bato"
    assert bato.backend_kind is BackendKind.MARKUP_SCRAPE
    assert bato.domains[0] == "https://bato.to"
    assert len(bato.domains) == len(set(bato.domains)) > 1

    other = descriptor_to_source(SourceDescriptor(name="Elsewhere", base_url="https://elsewhere.example"))
    assert other.is_stub
    assert other.backend_kind is BackendKind.STUB
    assert other.domains == ("https://elsewhere.example",)


async def test_fetch_skips_failing_repository_and_caches(clock):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if request.url.host == "broken.example":
            return httpx.Response(500)
        return httpx.Response(200, json=INDEX)

    cache = CacheManager()
    catalog = ExtensionCatalog(
        make_transport(handler, clock),
        cache.extensions,
        repositories=(BROKEN_REPO, GOOD_REPO),
    )

    descriptors = await catalog.fetch_sources()

    assert len(descriptors) == 3
    assert calls.count(BROKEN_REPO) == 2
    assert calls.count(GOOD_REPO) == 1

    cached = await catalog.fetch_sources()
    assert cached == descriptors
    assert len(calls) == 3

    await catalog.fetch_sources(refresh=True)
    assert len(calls) == 6


async def test_register_catalog_sources(clock):
    transport = make_transport(lambda request: httpx.Response(200, json=INDEX), clock)
    registry = SourceRegistry(transport)
    catalog = ExtensionCatalog(transport, repositories=(GOOD_REPO,))

    descriptors = await catalog.fetch_sources()
    added = catalog.register_catalog_sources(registry, descriptors)

    assert [source.id for source in added] == [d.id for d in descriptors]
    assert registry.get("7890050626002177109").adapter_key == "bato"
    assert [source.display_name for source in registry.stub_sources()] == ["Hentai Place"]
    assert registry.list_by_language("fr")[0].id == "1234"

    assert catalog.register_catalog_sources(registry, descriptors) == []


async def test_catalog_source_replaces_earlier_placeholder_lookup(clock):
    transport = make_transport(lambda request: httpx.Response(200, json=INDEX), clock)
    registry = SourceRegistry(transport)
    catalog = ExtensionCatalog(transport, repositories=(GOOD_REPO,))
    descriptors = await catalog.fetch_sources()

    assert registry.get_or_stub("7890050626002177109").is_stub
    added = catalog.register_catalog_sources(registry, descriptors)

    assert "7890050626002177109" in [source.id for source in added]
    bato = registry.get("7890050626002177109")
    assert bato is not None
    assert not bato.is_stub
    assert bato.adapter_key == "bato"
