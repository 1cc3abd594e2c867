"""Tests for oasgraph.resolution."""

from __future__ import annotations

import textwrap
import threading
from pathlib import Path
from typing import Optional

import httpx
import pytest

from oasgraph.document import OpenAPI, Parameter, ResolutionState, Resolvable, Schema
from oasgraph.exceptions import CancelledError, CircularReferenceError, ResolutionError
from oasgraph.parser import load_document
from oasgraph.resolution import ResolveOptions, resolve
from oasgraph.validation import RULE_REQUIRED_FIELD

from conftest import make_document, minimal


def _schemas(**schemas: object) -> OpenAPI:
    return make_document(minimal(components={"schemas": schemas}), "/specs/main.yaml")


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestLocalResolution:
    def test_resolves_to_component_object(self, petstore: OpenAPI) -> None:
        owner_ref = petstore.components.schemas["Pet"].properties["owner"]
        target = resolve(owner_ref, ResolveOptions(root_document=petstore))
        assert target.object is petstore.components.schemas["Owner"]
        assert target.absolute_reference == f"{petstore.location}#/components/schemas/Owner"
        assert target.absolute_document_path == petstore.location

    def test_inline_node_resolves_to_itself(self, petstore: OpenAPI) -> None:
        pet = petstore.components.schemas["Pet"]
        assert resolve(pet, ResolveOptions(root_document=petstore)).object is pet
        assert pet.resolution_cache.resolve_count == 0

    def test_reference_node(self, petstore: OpenAPI) -> None:
        ref = petstore.paths.entries["/pets"].object.get.parameters[0]
        target = ref.resolve(ResolveOptions(root_document=petstore))
        assert isinstance(target.object, Parameter)
        assert target.object.name == "limit"
        assert ref.get_object() is target.object
        assert ref.is_resolved()

    def test_idempotent(self, petstore: OpenAPI) -> None:
        ref = petstore.components.schemas["Pet"].properties["owner"]
        options = ResolveOptions(root_document=petstore)
        first = resolve(ref, options).object
        second = resolve(ref, options).object
        assert first is second
        assert ref.resolution_cache.resolve_count == 1
        assert ref.get_resolved_schema() is first

    def test_concurrent_callers_resolve_once(self, petstore: OpenAPI) -> None:
        ref = petstore.components.schemas["Owner"].properties["pets"].items
        options = ResolveOptions(root_document=petstore)
        barrier = threading.Barrier(8)
        results: list[object] = []
        lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            obj = resolve(ref, options).object
            with lock:
                results.append(obj)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert all(obj is petstore.components.schemas["Pet"] for obj in results)
        assert ref.resolution_cache.resolve_count == 1

    def test_chain_sets_parents(self) -> None:
        doc = _schemas(
            A={"$ref": "#/components/schemas/B"},
            B={"$ref": "#/components/schemas/C"},
            C={"$ref": "#/components/schemas/D"},
            D={"type": "string"},
        )
        a, b, c, d = (doc.components.schemas[k] for k in "ABCD")
        target = resolve(a, ResolveOptions(root_document=doc))
        assert target.object is d
        assert target.absolute_reference == "/specs/main.yaml#/components/schemas/B"
        assert target.target_reference == "/specs/main.yaml#/components/schemas/D"
        assert b.get_parent() is a and b.get_top_level_parent() is a
        assert c.get_parent() is b and c.get_top_level_parent() is a
        assert a.get_parent() is None
        assert a.get_resolved_schema() is d

    def test_missing_target(self) -> None:
        doc = _schemas(A={"$ref": "#/components/schemas/Nope"})
        with pytest.raises(ResolutionError, match="unable to resolve reference"):
            resolve(doc.components.schemas["A"], ResolveOptions(root_document=doc))
        assert doc.components.schemas["A"].resolution_cache.state is ResolutionState.UNRESOLVED

    def test_wrong_kind(self, petstore: OpenAPI) -> None:
        ref = petstore.paths.entries["/pets"].object.get.parameters[0]
        ref.reference = "#/components/schemas/Pet"
        with pytest.raises(ResolutionError, match="expected Parameter"):
            resolve(ref, ResolveOptions(root_document=petstore))

    def test_unsupported_resolvable(self) -> None:
        class Pointer(Resolvable):
            def get_reference(self) -> Optional[str]:
                return "#/components/schemas/A"

        doc = _schemas(A={"type": "string"})
        with pytest.raises(ResolutionError, match="Pointer cannot hold a reference"):
            resolve(Pointer(), ResolveOptions(root_document=doc))


class TestCircularPointers:
    def test_two_hop_cycle(self) -> None:
        doc = _schemas(
            A={"$ref": "#/components/schemas/B"},
            B={"$ref": "#/components/schemas/A"},
        )
        a, b = doc.components.schemas["A"], doc.components.schemas["B"]
        with pytest.raises(CircularReferenceError) as exc_info:
            resolve(a, ResolveOptions(root_document=doc))

        assert str(exc_info.value) == (
            "circular reference detected: /specs/main.yaml#/components/schemas/B"
            " -> /specs/main.yaml#/components/schemas/A"
            " -> /specs/main.yaml#/components/schemas/B"
        )
        assert a.resolution_cache.state is ResolutionState.CIRCULAR_ERROR
        assert b.resolution_cache.state is ResolutionState.CIRCULAR_ERROR

        # The terminal state is sticky and reports the same error.
        with pytest.raises(CircularReferenceError) as again:
            resolve(b, ResolveOptions(root_document=doc))
        assert str(again.value) == str(exc_info.value)

    def test_self_reference(self) -> None:
        doc = _schemas(A={"$ref": "#/components/schemas/A"})
        with pytest.raises(CircularReferenceError):
            resolve(doc.components.schemas["A"], ResolveOptions(root_document=doc))


class TestCancellation:
    def test_cancelled_before_resolution(self, petstore: OpenAPI) -> None:
        ref = petstore.components.schemas["Pet"].properties["owner"]
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(CancelledError):
            resolve(ref, ResolveOptions(root_document=petstore, cancel=cancel))
        assert ref.resolution_cache.state is ResolutionState.UNRESOLVED


class TestExternalDocuments:
    @pytest.fixture
    def split_spec(self, tmp_path: Path) -> OpenAPI:
        _write(
            tmp_path / "main.yaml",
            """\
            openapi: 3.0.3
            info: {title: Split, version: "1"}
            paths: {}
            components:
              schemas:
                First:
                  $ref: "shared/models.yaml#/Widget"
                Second:
                  $ref: "./shared/models.yaml#/Widget"
                Broken:
                  $ref: "shared/missing.yaml#/Widget"
              parameters:
                Bad:
                  $ref: "shared/models.yaml#/BadParam"
            """,
        )
        (tmp_path / "shared").mkdir()
        _write(
            tmp_path / "shared" / "models.yaml",
            """\
            Widget:
              type: object
              properties:
                part:
                  $ref: "#/Part"
            Part:
              type: string
            BadParam:
              name: q
            """,
        )
        return load_document(str(tmp_path / "main.yaml"))

    def test_relative_file(self, split_spec: OpenAPI, tmp_path: Path) -> None:
        target = resolve(split_spec.components.schemas["First"], ResolveOptions(root_document=split_spec))
        assert isinstance(target.object, Schema)
        assert target.object.type == "object"
        assert target.absolute_document_path == str(tmp_path / "shared" / "models.yaml")
        assert target.object.position == (2, 3)

    def test_fan_in_shares_object(self, split_spec: OpenAPI) -> None:
        options = ResolveOptions(root_document=split_spec)
        first = resolve(split_spec.components.schemas["First"], options).object
        second = resolve(split_spec.components.schemas["Second"], options).object
        assert first is second

    def test_relative_pointer_inside_external(self, split_spec: OpenAPI, tmp_path: Path) -> None:
        options = ResolveOptions(root_document=split_spec)
        target = resolve(split_spec.components.schemas["First"], options)
        part_ref = target.object.properties["part"]
        part = resolve(part_ref, options.for_target(target.absolute_document_path, target.document))
        assert part.object.type == "string"
        assert part.absolute_reference == f"{tmp_path / 'shared' / 'models.yaml'}#/Part"

    def test_missing_file(self, split_spec: OpenAPI) -> None:
        with pytest.raises(ResolutionError, match="Spec file not found"):
            resolve(split_spec.components.schemas["Broken"], ResolveOptions(root_document=split_spec))

    def test_disabled(self, split_spec: OpenAPI) -> None:
        options = ResolveOptions(root_document=split_spec, disable_external_refs=True)
        with pytest.raises(ResolutionError, match="external reference not allowed"):
            resolve(split_spec.components.schemas["First"], options)

    def test_validation_errors_from_target(self, split_spec: OpenAPI, tmp_path: Path) -> None:
        target = resolve(split_spec.components.parameters["Bad"], ResolveOptions(root_document=split_spec))
        assert [e.rule for e in target.validation_errors] == [RULE_REQUIRED_FIELD]
        assert target.validation_errors[0].document_location == str(tmp_path / "shared" / "models.yaml")

    def test_skip_validation(self, split_spec: OpenAPI) -> None:
        options = ResolveOptions(root_document=split_spec, skip_validation=True)
        assert resolve(split_spec.components.parameters["Bad"], options).validation_errors == []


class TestRemoteDocuments:
    def test_fetched_once_with_client(self) -> None:
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            return httpx.Response(
                200,
                text="Money:\n  type: number\n",
                headers={"content-type": "application/yaml"},
            )

        doc = make_document(
            minimal(
                components={
                    "schemas": {
                        "Price": {"$ref": "https://schemas.example.com/common.yaml#/Money"},
                        "Cost": {"$ref": "https://schemas.example.com/common.yaml#/Money"},
                    }
                }
            ),
            "https://api.example.com/openapi.yaml",
        )
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            options = ResolveOptions(root_document=doc, http_client=client)
            price = resolve(doc.components.schemas["Price"], options).object
            cost = resolve(doc.components.schemas["Cost"], options).object

        assert price is cost
        assert price.type == "number"
        assert requests == ["https://schemas.example.com/common.yaml"]

    def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        doc = make_document(
            minimal(components={"schemas": {"X": {"$ref": "https://example.com/x.yaml#/X"}}}),
            "/specs/main.yaml",
        )
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            options = ResolveOptions(root_document=doc, http_client=client)
            with pytest.raises(ResolutionError, match="HTTP 404"):
                resolve(doc.components.schemas["X"], options)
